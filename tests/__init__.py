"""Keystone Test Suite.

Test organization mirrors the keystone/ package:
    tests/
    ├── conftest.py          # Shared fixtures
    ├── test_core/           # Config, logging, exceptions, locks
    ├── test_db/             # Models and database
    ├── test_ai/             # Classifier, time resolver, discovery
    ├── test_engine/         # Interviews, summaries, conflicts, voice scheduling
    ├── test_api/            # HTTP endpoints
    └── test_cli.py          # Command line entry point

Markers:
    - @pytest.mark.slow: Tests taking > 1 second
    - @pytest.mark.database: Tests requiring database
"""
