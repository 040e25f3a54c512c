"""Transcript-to-task extraction pipeline.

Normalizer -> Reconciler -> Extraction Engine -> Task Persister, with the
Audit Logger on the side. TaskExtractionPipeline wires them together for
the direct-transcript and recording-based entry points.
"""
