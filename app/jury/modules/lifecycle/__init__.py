"""
Lifecycle and workflow orchestration for startups and jurors.
"""
