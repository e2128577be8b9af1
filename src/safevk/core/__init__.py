"""Core domain package for safevk.

Core contains filtering, routing, extraction, dispatch and the polling state
machine without any HTTP or storage-specific code, keeping the pipeline
portable across backends.
"""
