#!/usr/bin/env python3
import sys
import logging
import argparse

from gcqc import __version__
from gcqc.analysis.models import MergeKey
from gcqc.services.config_loader import build_config, load_config
from gcqc.services.errors import ConfigError, WorkerPanic
from gcqc.services.logging_config import LOG_LEVELS, TIMESTAMP_FORMATS, LogConfig, setup_main_logging
from gcqc import workflows

logger = logging.getLogger(__name__)

# INI keys accepted in the [gcqc] section, by argparse destination
INI_KEYS = {
    'timestamp', 'loglevel', 'quiet', 'merge', 'merge_by', 'threads',
    'reference_json', 'kmers', 'output', 'no_header', 'sidecar_dir', 'log_file',
}


def _merge_key(value: str) -> MergeKey:
    try:
        return MergeKey.from_name(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _setup_arguments():
    """Configures command-line arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="gcqc: GC-content and base-composition QC for sequencing read sets.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze each file separately, report to stdout
  ./gcqc_cli.py sample1.json sample2.json.gz

  # Compare against a reference distribution, 4 threads, report to a file
  ./gcqc_cli.py -r ref_gc.json -t 4 -o report.tsv *.json

  # Merge files by sample and include k-mer coverage
  ./gcqc_cli.py -M sample -k targets.kmcv -o report.tsv.gz *.json

  # Take defaults from an INI file ([gcqc] section)
  ./gcqc_cli.py -c gcqc.ini *.json
"""
    )

    # --- Logging ---
    parser.add_argument(
        "-X", "--timestamp",
        choices=list(TIMESTAMP_FORMATS),
        default='none',
        help="Prepend log entries with a timestamp of the given granularity (default: none)"
    )
    parser.add_argument(
        "-l", "--loglevel",
        choices=list(LOG_LEVELS),
        default='info',
        help="Set log level (default: info)"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Silence all log output"
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        default=None,
        help="Also write log output to FILE"
    )

    # --- Merging ---
    parser.add_argument(
        "-m", "--merge",
        action="store_true",
        help="Merge input datasets, inferring the merge key from the first dataset"
    )
    parser.add_argument(
        "-M", "--merge-by",
        metavar="KEY",
        type=_merge_key,
        default=None,
        help="Merge input datasets by KEY (default, sample, barcode, library, fli). Implies --merge"
    )

    # --- Processing ---
    parser.add_argument(
        "-t", "--threads",
        type=int,
        default=None,
        help="Number of analysis threads (default: min(available CPUs, number of input files))"
    )
    parser.add_argument(
        "-r", "--reference-json",
        metavar="FILE",
        default=None,
        help="JSON file with reference GC distributions"
    )
    parser.add_argument(
        "-k", "--kmers",
        metavar="FILE",
        default=None,
        help="KMCV k-mer index used to generate the k-mer counts"
    )

    # --- Output ---
    parser.add_argument(
        "-o", "--output",
        metavar="FILE",
        default=None,
        help="Output file, compressed according to its suffix (default: stdout)"
    )
    parser.add_argument(
        "-H", "--no-header",
        action="store_true",
        help="Do not write a header line to the output"
    )
    parser.add_argument(
        "--sidecar-dir",
        metavar="DIR",
        default=None,
        help="Directory for the per-dataset .gc_hist.tsv and .base_dist.tsv files "
             "(default: beside each input file)"
    )

    parser.add_argument(
        "-c", "--config",
        metavar="FILE",
        default=None,
        help="INI file whose [gcqc] section supplies option defaults"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show the program's version number and exit"
    )
    parser.add_argument(
        "input",
        nargs='+',
        metavar="INPUT",
        help="Input JSON files (optionally compressed)"
    )

    return parser


def parse_args(argv=None) -> argparse.Namespace:
    """
    Parses the command line. Values from an INI file given with -c become the
    defaults, so explicit command-line options override them.
    """
    parser = _setup_arguments()

    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("-c", "--config", default=None)
    known, _ = pre.parse_known_args(argv)

    if known.config:
        try:
            ini = load_config(known.config)
        except (FileNotFoundError, ConfigError) as e:
            parser.error(str(e))
        for key in sorted(set(ini) - INI_KEYS):
            logger.warning(f"Ignoring unknown option '{key}' in {known.config}")
        parser.set_defaults(**{k: v for k, v in ini.items() if k in INI_KEYS})

    args = parser.parse_args(argv)
    # Defaults taken from the INI file bypass 'choices'
    if args.loglevel not in LOG_LEVELS:
        parser.error(f"invalid log level '{args.loglevel}'")
    if args.timestamp not in TIMESTAMP_FORMATS:
        parser.error(f"invalid timestamp granularity '{args.timestamp}'")
    return args


def resolve_merge_key(args: argparse.Namespace):
    """--merge-by KEY wins; --merge alone means DEFAULT; neither means no merging."""
    if args.merge_by is not None:
        return args.merge_by
    if args.merge:
        return MergeKey.DEFAULT
    return None


def main(argv=None):
    args = parse_args(argv)

    # 1. Setup Logging
    setup_main_logging(LogConfig(
        level=args.loglevel,
        quiet=args.quiet,
        timestamp=args.timestamp,
        log_file=args.log_file,
    ))
    logger.debug(f"Arguments: {vars(args)}")

    # 2. Build configuration
    try:
        cfg = build_config(
            input_files=args.input,
            output_file=args.output,
            threads=args.threads,
            merge_key=resolve_merge_key(args),
            ref_dist_file=args.reference_json,
            kmcv_file=args.kmers,
            no_header=args.no_header,
            sidecar_dir=args.sidecar_dir,
        )
    except ConfigError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)

    # 3. Dispatch to the pipeline
    try:
        failed = workflows.run_pipeline(cfg)
    except WorkerPanic as e:
        logger.critical(f"A fatal error occurred in the pipeline: {e}", exc_info=True)
        sys.exit(1)

    if failed:
        logger.error("Error occurred during processing")
        sys.exit(1)

    logger.info(f"Processed {len(cfg.input_files)} input file(s)")


# --- Main Execution ---
if __name__ == "__main__":
    main()
