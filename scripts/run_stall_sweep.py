#!/usr/bin/env python
"""
Run Stall Sweep - Fail verification runs stuck in RUNNING.

Runs as a standalone process (not inside Flask web).

Usage:
    # Single pass
    python scripts/run_stall_sweep.py

    # Keep sweeping every SWEEP_INTERVAL_SECONDS
    python scripts/run_stall_sweep.py --loop

Scheduling:
    # Every 3 minutes via cron
    */3 * * * * cd /path/to/dlc-review && python scripts/run_stall_sweep.py
"""

import sys
import os
import click
import logging
import time

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dlc_review import config
from dlc_review.web import create_app
from dlc_review.workers.stall_sweep import StallSweep

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)
logger = logging.getLogger(__name__)


@click.command()
@click.option('--loop', is_flag=True,
              help='Sweep repeatedly instead of once')
@click.option('--interval', '-i', default=config.SWEEP_INTERVAL_SECONDS, type=float,
              help='Seconds between sweeps in --loop mode')
@click.option('--floor', default=None, type=float,
              help='Override STALL_FLOOR_SECONDS')
@click.option('--per-unit', default=None, type=float,
              help='Override STALL_SECONDS_PER_UNIT')
def main(loop: bool, interval: float, floor: float, per_unit: float):
    """Move RUNNING verifications past their stall threshold to FAILED/STALLED."""
    app = create_app()

    with app.app_context():
        sweep = StallSweep(
            floor_seconds=floor if floor is not None else app.config["STALL_FLOOR_SECONDS"],
            seconds_per_unit=per_unit if per_unit is not None else app.config["STALL_SECONDS_PER_UNIT"],
        )

        while True:
            stalled = sweep.sweep()
            if stalled:
                logger.warning(f"Marked {len(stalled)} verification(s) as STALLED: {', '.join(stalled)}")
            else:
                logger.info("No stalled verifications")

            if not loop:
                break
            time.sleep(interval)


if __name__ == '__main__':
    main()
