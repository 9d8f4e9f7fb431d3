#!/usr/bin/env python3
"""Keystone - Rental CRM feedback interviews and voice scheduling.

Single entry point for the application.

Usage:
    python keystone_app.py --serve                 # Run the HTTP API
    python keystone_app.py --init-db               # Create the database schema
    python keystone_app.py --voice "Book a showing tomorrow at 3pm" --property-id 7
    python keystone_app.py --status                # Show configuration report
    python keystone_app.py --version               # Show version
"""

import argparse
import sys

from keystone import __version__
from keystone.core.config import get_config, validate_config
from keystone.core.logging import get_logger, setup_logging


def main(argv: list[str] | None = None) -> int:
    """Main entry point for Keystone.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    parser = argparse.ArgumentParser(
        description="Keystone - Rental CRM feedback interviews and voice scheduling"
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API under uvicorn")
    parser.add_argument("--init-db", action="store_true", help="Create the database schema")
    parser.add_argument("--voice", metavar="TRANSCRIPT", help="Interpret one voice transcript")
    parser.add_argument("--property-id", type=int, help="Property for --voice")
    parser.add_argument("--agent-id", type=int, help="Agent for --voice")
    parser.add_argument("--status", action="store_true", help="Show configuration report and exit")
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    if args.version:
        print(f"Keystone v{__version__}")
        return 0

    config = get_config()
    debug = args.debug or config.debug
    setup_logging(config.log_path, debug=debug)
    logger = get_logger("main")
    logger.info(f"Keystone v{__version__} starting...")

    issues = validate_config(config)
    critical = [issue for issue in issues if issue.startswith("CRITICAL:")]
    for issue in issues:
        if issue in critical:
            logger.error(f"Configuration: {issue}")
        else:
            logger.warning(f"Configuration issue: {issue}")

    if args.status:
        print(f"\nKeystone v{__version__} - Configuration\n")
        print(f"  Database:   {config.db_path}")
        print(f"  Logs:       {config.log_path}")
        print(f"  Timezone:   {config.timezone}")
        print(f"  Threshold:  {config.classifier_threshold}")
        print(f"  Showing:    {config.showing_minutes} min")
        print(f"  Agent:      {config.default_agent_id}")
        print(f"  Graphs:     {config.graph_dir or 'built-in'}")
        if issues:
            print(f"\nConfiguration issues ({len(issues)}):")
            for issue in issues:
                print(f"  ! {issue}")
        print()
        return 0

    if critical:
        return 1

    from keystone.core.exceptions import KeystoneError
    from keystone.db.database import Database

    try:
        db = Database(str(config.db_path))
        db.initialize()
    except KeystoneError as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    if args.init_db:
        print(f"Database ready: {config.db_path}")
        db.close()
        return 0

    if args.voice:
        from keystone.engine.voice_scheduler import VoiceSchedulingInterpreter

        interpreter = VoiceSchedulingInterpreter(db, config)
        try:
            outcome = interpreter.process(
                args.voice, property_id=args.property_id, agent_id=args.agent_id
            )
        except KeystoneError as e:
            logger.error(f"Voice command failed: {e}")
            db.close()
            return 1
        print(outcome.message)
        for entry in outcome.schedules:
            print(f"  #{entry.id} agent {entry.agent_id}: {entry.start} - {entry.end}")
        db.close()
        return 0

    if args.serve:
        import uvicorn

        from keystone.api.app import create_app

        app = create_app(db=db, config=config)
        logger.info(
            "Serving API",
            extra={"context": {"host": config.api_host, "port": config.api_port}},
        )
        uvicorn.run(app, host=config.api_host, port=config.api_port, log_level="info")
        db.close()
        logger.info("Keystone shutdown complete")
        return 0

    parser.print_help()
    db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
