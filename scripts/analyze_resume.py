"""Resume analysis entrypoint.

Loads configuration, builds the container, warms up the standards index and
prints the analysis of one resume as JSON.

Works when running from a repo checkout (adds `<repo>/src` to sys.path).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Make `src/career_rag` importable when running from a repo checkout.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from career_rag.app.container import build_container
from career_rag.config import GlobalConfig


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyse a resume against a target role")

    parser.add_argument(
        "--config-file",
        "-c",
        required=False,
        type=str,
        default=None,
        help="Path to the YAML configuration file (optional; built-in defaults when unset).",
    )
    parser.add_argument(
        "--resume",
        "-r",
        required=True,
        type=str,
        help="Path to a plain-text resume.",
    )
    parser.add_argument(
        "--role",
        required=True,
        type=str,
        help="Target role key, e.g. data-analyst.",
    )
    parser.add_argument(
        "--job-description",
        "-j",
        required=False,
        type=str,
        default=None,
        help="Path to a plain-text job description (optional).",
    )
    parser.add_argument(
        "--sections",
        action="store_true",
        help="Run section-by-section analysis instead of the aggregate analysis.",
    )
    parser.add_argument(
        "--log-level",
        required=False,
        type=str,
        default="INFO",
        help="Logging level (default: INFO).",
    )

    return parser.parse_args()


async def _run(args: argparse.Namespace) -> str:
    cfg = GlobalConfig.load(args.config_file) if args.config_file else GlobalConfig()
    container = build_container(cfg)
    await container.warm_up()

    resume_text = Path(args.resume).read_text(encoding="utf-8")
    job_description = (
        Path(args.job_description).read_text(encoding="utf-8") if args.job_description else None
    )

    if args.sections:
        report = await container.pipeline.analyze_sections(
            resume_text, args.role, job_description=job_description
        )
    else:
        report = await container.pipeline.analyze(
            resume_text, args.role, job_description=job_description
        )
    return report.model_dump_json(indent=2)


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    print(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
