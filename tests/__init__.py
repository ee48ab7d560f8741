"""
segment-stream Test Suite

Test Categories:
- unit/: Fast, isolated unit tests
- integration/: Scheduler loop scenarios against a real queue directory
- fixtures/: Shared test data and fakes
"""
