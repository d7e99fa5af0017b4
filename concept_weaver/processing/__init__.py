"""
Processing subsystem exports.
"""

from .config import ALLOWED_MIME_TYPES, PipelineConfig, load_config
from .dispatcher import JobDispatcher
from .enrichment import EnrichmentClient, parse_concept_map
from .errors import (
    ConfigurationError,
    EnrichmentConfigurationError,
    EnrichmentError,
    ExtractionError,
    ExtractionTimeoutError,
    InsufficientContentError,
    InvalidTransitionError,
    JobNotFoundError,
    ParseContractViolation,
    PipelineError,
    ValidationError,
)
from .extraction import (
    DocxExtractor,
    Extractor,
    FallbackExtractor,
    ImageExtractor,
    PdfExtractor,
    PlainTextExtractor,
    PptxExtractor,
    TextExtractor,
)
from .models import (
    ConceptEdge,
    ConceptMap,
    ConceptNode,
    ExtractionResult,
    JobRecord,
    JobResult,
    JobStatus,
    NodeType,
    UploadMeta,
)
from .repository import InMemoryJobRepository, JobRepository
from .storage import ByteStore, LocalFileStorage, StoragePaths, StoredFile, safe_filename
from .submission import store_upload, submit_upload, validate_upload

__all__ = [
    "ALLOWED_MIME_TYPES",
    "ByteStore",
    "ConceptEdge",
    "ConceptMap",
    "ConceptNode",
    "ConfigurationError",
    "DocxExtractor",
    "EnrichmentClient",
    "EnrichmentConfigurationError",
    "EnrichmentError",
    "ExtractionError",
    "ExtractionResult",
    "ExtractionTimeoutError",
    "Extractor",
    "FallbackExtractor",
    "ImageExtractor",
    "InMemoryJobRepository",
    "InsufficientContentError",
    "InvalidTransitionError",
    "JobDispatcher",
    "JobNotFoundError",
    "JobRecord",
    "JobRepository",
    "JobResult",
    "JobStatus",
    "LocalFileStorage",
    "NodeType",
    "ParseContractViolation",
    "PdfExtractor",
    "PipelineConfig",
    "PipelineError",
    "PlainTextExtractor",
    "PptxExtractor",
    "StoragePaths",
    "StoredFile",
    "TextExtractor",
    "UploadMeta",
    "ValidationError",
    "load_config",
    "parse_concept_map",
    "safe_filename",
    "store_upload",
    "submit_upload",
    "validate_upload",
]
