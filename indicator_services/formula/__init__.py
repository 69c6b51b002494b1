"""Composite indicator formulas.

- parser.py: tokenizer and authoring-time validation
- evaluator.py: per-row evaluation with null propagation
"""
