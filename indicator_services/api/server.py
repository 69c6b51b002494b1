from __future__ import annotations
from typing import Any, Dict, Optional
import logging

from flask import Flask, request, jsonify

from indicator_services.api.sessions import REGISTRY, SessionLimitReached
from indicator_services.config.env import get_api_config, get_grid_config
from indicator_services.errors import FormulaValidationError, IndicatorServicesError, InvalidPeriod
from indicator_services.formula.evaluator import evaluate
from indicator_services.formula.parser import compile_formula, referenced_codes, validate_formula
from indicator_services.grid.cells import Cell
from indicator_services.grid.changelog import CellEdit, ChangeLog, Operation, RowInsertion
from indicator_services.grid.payload import build_payloads
from indicator_services.periods.calendar import detect_period_format, generate_start, parse_period
from indicator_services.periods.frequency import Frequency
from indicator_services.periods.sequence import generate_sequence

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Configuration helpers (overridable via app.config in tests)

def _get_max_sessions() -> int:
    n = app.config.get('MAX_SESSIONS')
    if n is None:
        n = get_api_config().max_sessions
    return int(n)


def _get_initial_rows() -> int:
    n = app.config.get('GRID_INITIAL_ROWS')
    if n is None:
        n = get_grid_config().initial_rows
    return int(n)


def _payload() -> Dict[str, Any]:
    body = request.get_json(force=True, silent=True)
    return body if isinstance(body, dict) else {}


def _int_field(payload: Dict[str, Any], name: str, default: Optional[int] = None) -> int:
    raw = payload.get(name, default)
    if raw is None or isinstance(raw, bool):
        raise IndicatorServicesError(f"{name} must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise IndicatorServicesError(f"{name} must be an integer") from None


def _str_list(payload: Dict[str, Any], name: str) -> list[str]:
    raw = payload.get(name) or []
    if not isinstance(raw, list):
        raise IndicatorServicesError(f"{name} must be a list")
    return ["" if v is None else str(v) for v in raw]


def _describe(op: Optional[Operation]) -> Optional[Dict[str, Any]]:
    if isinstance(op, RowInsertion):
        return {'type': 'row_insertion', 'at_index': op.at_index, 'count': op.count, 'start_period': op.start_period}
    if isinstance(op, CellEdit):
        return {'type': 'cell_edit', 'rows': op.rows, 'changes': len(op.changes)}
    return None


@app.errorhandler(IndicatorServicesError)
def _handle_service_error(e: IndicatorServicesError):
    body: Dict[str, Any] = {'error': e.code, 'message': str(e)}
    if isinstance(e, FormulaValidationError):
        body['reason'] = e.reason.value
        body['token'] = e.token
    status = 429 if isinstance(e, SessionLimitReached) else 400
    return jsonify(body), status


# Periods

@app.get('/periods/start')
def get_start_period():
    frequency = Frequency.parse(request.args.get('frequency') or 'monthly')
    return jsonify({'frequency': frequency.value, 'period': generate_start(frequency)})


@app.post('/periods/generate')
def post_generate_periods():
    payload = _payload()
    frequency = Frequency.parse(payload.get('frequency') or 'monthly')
    periods = generate_sequence(
        _str_list(payload, 'existing'),
        _int_field(payload, 'count', 1),
        bool(payload.get('forward', True)),
        payload.get('start') or None,
        frequency,
    )
    return jsonify({'frequency': frequency.value, 'periods': periods})


@app.post('/periods/parse')
def post_parse_period():
    payload = _payload()
    period = payload.get('period')
    if not isinstance(period, str):
        return jsonify({'error': 'period is required'}), 400
    frequency = Frequency.parse(payload.get('frequency'))
    detected = detect_period_format(period).value
    try:
        instant = parse_period(period, frequency)
    except InvalidPeriod as e:
        return jsonify({'error': e.code, 'message': str(e), 'detected_format': detected}), 400
    return jsonify({'period': period, 'frequency': frequency.value, 'instant': instant.isoformat(),
                    'detected_format': detected})


# Formulas

@app.post('/formulas/validate')
def post_validate_formula():
    payload = _payload()
    basis = payload.get('basis') or {}
    if not isinstance(basis, dict):
        return jsonify({'error': 'basis must map codes to frequencies'}), 400
    tokens = validate_formula(payload.get('formula'), basis)
    return jsonify({'valid': True, 'tokens': tokens, 'codes': referenced_codes(tokens)})


@app.post('/formulas/evaluate')
def post_evaluate_formula():
    payload = _payload()
    raw_row = payload.get('row') or {}
    if not isinstance(raw_row, dict):
        return jsonify({'error': 'row must be an object'}), 400
    row = {code: Cell.from_record(v).value for code, v in raw_row.items()}
    return jsonify({'value': evaluate(payload.get('formula') or '', row)})


# Editing sessions

@app.post('/sessions')
def post_sessions():
    payload = _payload()
    frequency = Frequency.parse(payload.get('frequency') or 'monthly')
    codes = _str_list(payload, 'codes')
    rows = payload.get('rows') or []
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        return jsonify({'error': 'rows must be a list of objects'}), 400
    composite = None
    if payload.get('formula'):
        target = payload.get('target')
        if not target:
            return jsonify({'error': 'target is required with a formula'}), 400
        basis = payload.get('basis') or {code: frequency.value for code in codes}
        composite = compile_formula(payload['formula'], basis, str(target))
    log = ChangeLog.from_records(rows, codes, frequency, composite=composite, initial_rows=_get_initial_rows())
    session = REGISTRY.create(log, limit=_get_max_sessions())
    logger.info("Opened session %s (%s, %d rows)", session.id, frequency.value, len(log.rows))
    return jsonify(session.snapshot())


@app.get('/sessions/<sid>')
def get_session(sid: str):
    s = REGISTRY.get(sid)
    if not s:
        return jsonify({'error': 'not_found'}), 404
    with s.lock:
        return jsonify(s.snapshot())


@app.post('/sessions/<sid>/edits')
def post_session_edits(sid: str):
    s = REGISTRY.get(sid)
    if not s:
        return jsonify({'error': 'not_found'}), 404
    changes = _payload().get('changes')
    if not isinstance(changes, list) or not all(isinstance(c, dict) for c in changes):
        return jsonify({'error': 'changes must be a list of objects'}), 400
    triples = [(_int_field(c, 'row'), str(c.get('field') or ''), c.get('value')) for c in changes]
    with s.lock:
        op = s.log.apply_edit(triples)
        warnings = [
            {'row': c.row, 'period': c.new, 'detected_format': detect_period_format(str(c.new)).value}
            for c in (s.log.unexpected_periods(op.changes) if op else [])
        ]
        return jsonify({'operation': _describe(op), 'warnings': warnings, **s.snapshot()})


@app.post('/sessions/<sid>/rows')
def post_session_rows(sid: str):
    s = REGISTRY.get(sid)
    if not s:
        return jsonify({'error': 'not_found'}), 404
    payload = _payload()
    at_index = _int_field(payload, 'at_index')
    count = _int_field(payload, 'count', 1)
    with s.lock:
        op = s.log.insert_rows(at_index, count, payload.get('start_period') or None)
        return jsonify({'operation': _describe(op), **s.snapshot()})


@app.post('/sessions/<sid>/undo')
def post_session_undo(sid: str):
    s = REGISTRY.get(sid)
    if not s:
        return jsonify({'error': 'not_found'}), 404
    with s.lock:
        op = s.log.undo()
        return jsonify({'operation': _describe(op), **s.snapshot()})


@app.post('/sessions/<sid>/redo')
def post_session_redo(sid: str):
    s = REGISTRY.get(sid)
    if not s:
        return jsonify({'error': 'not_found'}), 404
    with s.lock:
        op = s.log.redo()
        return jsonify({'operation': _describe(op), **s.snapshot()})


@app.post('/sessions/<sid>/payload')
def post_session_payload(sid: str):
    s = REGISTRY.get(sid)
    if not s:
        return jsonify({'error': 'not_found'}), 404
    ids = _payload().get('ids') or {}
    if not isinstance(ids, dict) or not ids:
        return jsonify({'error': 'ids must map codes to indicator ids'}), 400
    with s.lock:
        payloads = build_payloads(s.log.rows, {str(k): str(v) for k, v in ids.items()}, s.log.frequency)
    return jsonify({'payloads': payloads})


@app.delete('/sessions/<sid>')
def delete_session(sid: str):
    if not REGISTRY.delete(sid):
        return jsonify({'error': 'not_found'}), 404
    return jsonify({'session_id': sid, 'deleted': True})


if __name__ == '__main__':
    from indicator_services.config.logs import configure_logging

    configure_logging()
    cfg = get_api_config()
    app.run(host=cfg.host, port=cfg.port)
