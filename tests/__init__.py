"""Test suite for FormGuard.

This package contains tests for:
- Rule evaluation (built-in kinds, messages, custom predicates, registries)
- Validation engine (ordered rules, whole-form snapshots, sanitization)
- Debounce and throttle scheduling
- State machine transitions and stale result handling
- Submission orchestration
- Event system and configuration loading
- Integration scenarios through FormRuntime
"""
