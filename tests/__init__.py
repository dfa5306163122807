"""Test suite for formflow.

This package contains tests for:
- Copy-on-write model storage and dot-path access
- Model transforms and transform error propagation
- Schema validation, async validation hooks and stale-result discarding
- Validation timing policies
- Change interceptor chains and built-in behaviors
- Debounced autosave and serialized submission
- Event emission and end-to-end form scenarios
"""
