"""
BioShield Vulnerability Triage - One-Shot Execution Mode

Runs one full ingestion and one analysis batch, prints a summary and
exits. Suited to cron jobs and CI runners where a resident scheduler is
not wanted.
"""

import os
import sys
from typing import Dict, Any

from .config import load_config
from .main import BioShieldService, prepare


def run_single_pass() -> Dict[str, Any]:
    """
    Execute one ingestion and one analysis batch.

    Returns:
        Dict with the ingestion message, batch summary and store statistics.

    Raises:
        SystemExit: On configuration errors or critical failures.
    """
    print("=" * 60)
    print("  BioShield Vulnerability Triage - Single Run")
    print("=" * 60)
    print()

    config = load_config()
    logger = prepare(config)
    logger.info("single_run_started", version="1.0.0")

    service = None
    try:
        service = BioShieldService(config, logger)

        ingestion = service.run_ingestion()
        batch = service.run_analysis()
        stats = service.store.get_stats()

        service.cleanup()

        logger.info(
            "single_run_completed",
            ingestion=ingestion.message,
            processed=batch["processed"],
            failed=batch["failed"]
        )

        print()
        print("=" * 60)
        print("  Run Summary")
        print("=" * 60)
        print(ingestion.message)
        print(f"Vulnerabilities Stored: {stats['total_vulnerabilities']}")
        print(f"Known Exploited: {stats['known_exploited']}")
        print(f"Analyzed This Run: {batch['processed']}")
        print(f"Analysis Failures: {batch['failed']}")
        print(f"Awaiting Analysis: {stats['unanalyzed_vulnerabilities']}")
        breakdown = stats["priority_breakdown"]
        print(
            "Priorities: "
            + ", ".join(f"{level} {breakdown[level]}" for level in ("CRITICAL", "HIGH", "MEDIUM", "LOW"))
        )
        print("=" * 60)
        print()

        if github_output := os.getenv("GITHUB_OUTPUT"):
            try:
                with open(github_output, "a") as f:
                    f.write(f"total_vulnerabilities={stats['total_vulnerabilities']}\n")
                    f.write(f"analyzed={batch['processed']}\n")
                    f.write(f"failed={batch['failed']}\n")
                logger.info("github_output_written", path=github_output)
            except OSError as e:
                logger.warning("github_output_write_failed", error=str(e))

        summary = {
            "ingestion": ingestion.message,
            "batch": batch,
            "stats": stats,
        }

        if ingestion.message.startswith("Full ingestion failed") and batch["processed"] == 0:
            logger.error("run_failed_nothing_processed")
            sys.exit(1)

        return summary

    except Exception as e:
        logger.error("run_failed", error=str(e), exc_info=True)
        print(f"\nFatal error: {str(e)}")
        if service is not None:
            try:
                service.cleanup()
            except Exception as cleanup_error:
                logger.error("cleanup_failed", error=str(cleanup_error))
        sys.exit(1)


def main():
    """Entry point for one-shot execution."""
    run_single_pass()
    sys.exit(0)


if __name__ == "__main__":
    main()
