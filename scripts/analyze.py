from __future__ import annotations
import argparse, json
import os, sys
sys.path.append(os.path.dirname(os.path.dirname(__file__)))  # add project root
from pathlib import Path
from dotenv import load_dotenv
from src.core.errors import CsvParseError, NoColumnsError
from src.reports.report import render_summary
from src.services.analyzer import summarize
from src.services.projects import ProjectService
from src.utils.config import AppConfig
from src.utils.logging import setup_logging


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    cfg = AppConfig.load()
    ap = argparse.ArgumentParser(description="Summarize an expression CSV")
    ap.add_argument("--csv", required=True, help="Path to input CSV")
    ap.add_argument("--format", choices=["json", "md"], default="json")
    ap.add_argument("--top", type=int, default=cfg.top_variable, help="Number of top variable columns")
    ap.add_argument("--preview", type=int, default=cfg.preview_rows, help="Number of preview rows")
    ap.add_argument("--save", metavar="NAME", help="Save as a project under NAME")
    args = ap.parse_args(argv)
    setup_logging(cfg.log_level, json_format=cfg.log_json, stream=sys.stderr)

    path = Path(args.csv)
    content = path.read_bytes()
    try:
        summary = summarize(content, preview_rows=args.preview, top_n=args.top)
    except CsvParseError as e:
        print(json.dumps({"error": "CSV parse error", "details": e.errors}, ensure_ascii=False), file=sys.stderr)
        return 2
    except NoColumnsError as e:
        print(json.dumps({"error": str(e)}, ensure_ascii=False), file=sys.stderr)
        return 2

    if args.format == "md":
        print(render_summary(summary, title=path.name))
    else:
        print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))

    if args.save:
        service = ProjectService.from_config(cfg)
        out = service.upload_project(content, filename=path.name, name=args.save)
        print(json.dumps(out, ensure_ascii=False), file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
