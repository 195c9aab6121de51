"""Timer and schedule engine for FocusFlow.

Submodules are imported directly (`focusflow.engine.completion`, ...) since
the task models depend on `focusflow.engine.time_utils`.
"""
