"""
Concept Weaver core package.

The processing subsystem turns an uploaded document into extracted text,
an exam-style summary and a concept map. It exposes the job/state
dataclasses, a pluggable byte store, per-format extractors, the model
client used for enrichment, and a single-slot dispatcher that drives jobs
from queued to done or error.
"""
