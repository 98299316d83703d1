#!/usr/bin/env python3
"""Grid-search ensemble weights and threshold from a labelled JSON dataset.

The dataset is an array of ``{"label": 0|1, "components": {method:
{"confidence", "aiProbability"}}}`` objects. On success the result is
merged into the persisted ensemble config unless ``--no-persist``.
"""
import argparse, logging, sys
from medauth.calibration import calibrate_file
from medauth.exceptions import ConfigurationError, InvalidCalibrationInput, NoViableCalibration
from medauth.report import format_calibration
from medauth.store import ConfigStore

def main(argv=None):
    ap = argparse.ArgumentParser(description="Calibrate ensemble weights from labelled samples")
    ap.add_argument("dataset")
    ap.add_argument("--config", default=None, help="persisted config path (default: MEDAUTH_CONFIG_PATH)")
    ap.add_argument("--no-persist", action="store_true")
    ap.add_argument("--format", choices=("text", "json"), default="text")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    store = ConfigStore(path=args.config)
    try:
        store.load()
    except ConfigurationError as e:
        print(f"Calibration failed: {e}", file=sys.stderr)
        return 2
    try:
        result = calibrate_file(args.dataset, store=store, persist=not args.no_persist)
    except (InvalidCalibrationInput, NoViableCalibration) as e:
        print(f"Calibration failed: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"Calibration failed: cannot persist config to {store.path}: {e}", file=sys.stderr)
        return 2
    print(format_calibration(result, args.format))
    return 0

if __name__ == "__main__":
    sys.exit(main())
