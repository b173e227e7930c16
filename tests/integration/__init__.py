"""
play-sandbox: integration test package

Purpose
- Tests that run real ``git`` and real subprocesses of ``python -m playground``.
"""
