"""
cli.py - Command-line statics analysis of a mechanism JSON document.

    statics-analyze fourbar.json --steps 72 --out user/statics/fourbar.csv
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from configs.appconfig import AppConfig
from configs.logging_config import configure_logging
from configs.logging_config import get_level_names
from statics_tools.conventions import AnalysisSession
from statics_tools.export import build_export_rows
from statics_tools.export import write_csv
from statics_tools.kinematic import PylinkageFrameSource
from statics_tools.loader import load_mechanism
from statics_tools.orchestrator import analyze_mechanism
from statics_tools.orchestrator import StaticsConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='statics-analyze',
        description='Solve joint reactions and input torque over one motion cycle.',
    )
    parser.add_argument('mechanism', type=Path, help='Mechanism JSON document')
    parser.add_argument('--steps', type=int, default=AppConfig.DEFAULT_N_STEPS, help='Timesteps per revolution')
    parser.add_argument('--gravity', type=float, default=AppConfig.GRAVITY, help='Gravity magnitude')
    parser.add_argument('--out', type=Path, default=None, help='CSV output path (one file per sub-mechanism)')
    parser.add_argument('--log-level', default='INFO', choices=get_level_names())
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    mechanism = load_mechanism(args.mechanism)
    config = StaticsConfig(gravity=args.gravity)
    session = AnalysisSession(mechanism, gravity=args.gravity)
    source = PylinkageFrameSource(mechanism, n_steps=args.steps)

    analyses = analyze_mechanism(mechanism, source, session=session, config=config)
    if not analyses:
        logger.error(f"No sub-mechanisms found in {args.mechanism}")
        return 1

    out = args.out or AppConfig.get_default_csv_path(args.mechanism.stem)
    n_written = 0
    for i, analysis in enumerate(analyses):
        if not analysis.success:
            reason = source.errors.get(analysis.key, analysis.error)
            logger.warning(f"Sub-mechanism {analysis.key} skipped: {reason}")
            continue
        path = out if len(analyses) == 1 else out.with_name(f'{out.stem}_{i}{out.suffix}')
        write_csv(path, build_export_rows(mechanism, analysis))
        n_written += 1

    return 0 if n_written else 1


if __name__ == '__main__':
    sys.exit(main())
