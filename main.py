"""CLI entry point: python main.py run | tick | rules | policies"""

import argparse
import asyncio
import logging

from src.alerting.config import build_default_policies, build_default_rules
from src.api.app import build_engine
from src.logging_config import configure_logging
from src.settings import get_settings

logger = logging.getLogger(__name__)


def print_rules():
    print(f"{'RULE':32s} {'SEVERITY':9s} {'METRIC':20s} CONDITION")
    for rule in build_default_rules():
        c = rule.condition
        bound = f"{c.threshold:g}" if c.threshold_max is None else f"{c.threshold:g}..{c.threshold_max:g}"
        print(
            f"{rule.id:32s} {rule.severity.value:9s} {rule.metric_type or '*':20s} "
            f"{c.operator.value} {bound} for {c.duration_minutes}m"
        )


def print_policies():
    for policy in build_default_policies():
        print(f"{policy.id}: {policy.name}")
        for level in policy.levels:
            channels = ", ".join(ch.type_name for ch in level.channels)
            print(f"  L{level.level} +{level.delay_minutes}m  [{channels}]  {', '.join(level.recipients)}")


async def run_once():
    engine = await build_engine(get_settings())
    evaluation = await engine.evaluate_rules()
    escalation = await engine.process_escalations()
    print(f"Rules evaluated:   {evaluation.rules_evaluated}")
    print(f"Alerts created:    {len(evaluation.alerts_created)}")
    print(f"Alerts resolved:   {len(evaluation.alerts_resolved)}")
    print(f"Failed rules:      {len(evaluation.failed_rules)}")
    print(f"Levels executed:   {escalation.levels_executed}")


async def run_forever():
    engine = await build_engine(get_settings())
    await engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()


def main():
    parser = argparse.ArgumentParser(
        description="SKC - Alerting & escalation engine"
    )
    parser.add_argument(
        "command", choices=["run", "tick", "rules", "policies"],
        help="run: start both loops; tick: one evaluation + escalation pass; "
             "rules/policies: show the built-in defaults"
    )
    args = parser.parse_args()

    if args.command == "rules":
        print_rules()
        return
    if args.command == "policies":
        print_policies()
        return

    configure_logging()
    if args.command == "tick":
        asyncio.run(run_once())
        return

    try:
        asyncio.run(run_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
