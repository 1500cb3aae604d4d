"""
kanidm-unix-verify Test Suite

Test organization:
- unit/: Unit tests for individual modules, HTTP faked with httpx.MockTransport
- property/: Property-based tests using Hypothesis
"""
