import argparse
import json
import logging
import sys

from nerkit.ner.config import load_config, load_paths
from nerkit.ner.errors import NERError
from nerkit.ner.extractor import EntityExtractor
from nerkit.ner.process import DEFAULT_PATTERN, process_tree

log = logging.getLogger(__name__)


def cmd_extract(args) -> int:
    with EntityExtractor(load_config(args.config)) as extractor:
        for entity in extractor.predict(args.text):
            print(json.dumps(entity.model_dump(), ensure_ascii=False))
    return 0


def cmd_process(args) -> int:
    paths = load_paths(args.config)
    input_dir = args.input_dir or paths.get("clean_dir")
    output_dir = args.output_dir or paths.get("ner_dir")
    if input_dir is None or output_dir is None:
        log.error("--input_dir and --output_dir are required when configs have no paths section")
        return 2
    process_tree(input_dir, output_dir, load_config(args.config), pattern=args.pattern)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Named entity extraction")
    parser.add_argument("--config", default=None, help="YAML config (default: configs/config.yaml)")
    parser.add_argument("--log-level", default="INFO")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # extract
    p1 = subparsers.add_parser("extract", help="Print entities found in TEXT as JSON lines")
    p1.add_argument("text", nargs="+")
    p1.set_defaults(func=cmd_extract)

    # process
    p2 = subparsers.add_parser("process", help="Run NER over a tree of JSONL files")
    p2.add_argument("--input_dir", default=None)
    p2.add_argument("--output_dir", default=None)
    p2.add_argument("--pattern", default=DEFAULT_PATTERN)
    p2.set_defaults(func=cmd_process)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except NERError as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
