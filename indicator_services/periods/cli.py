import json
import sys

from indicator_services.config.logs import configure_logging
from .calendar import generate_start
from .frequency import Frequency
from .sequence import generate_sequence

USAGE = "Usage: python -m indicator_services.periods.cli <frequency> <count> [start] [--backward]"


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    backward = "--backward" in args
    args = [a for a in args if a != "--backward"]
    if len(args) < 2 or len(args) > 3:
        print(USAGE)
        sys.exit(2)
    try:
        count = int(args[1])
    except ValueError:
        print(USAGE)
        sys.exit(2)
    configure_logging("WARNING")
    freq = Frequency.parse(args[0])
    start = args[2] if len(args) == 3 else generate_start(freq)
    periods = generate_sequence([], count, not backward, start, freq)
    print(json.dumps({
        "frequency": freq.value,
        "start": start,
        "forward": not backward,
        "periods": periods,
    }, indent=2))


if __name__ == "__main__":
    main()
