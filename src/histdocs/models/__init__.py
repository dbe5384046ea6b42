from histdocs.models.analysis import AnalysisResult, FileContent, FileMetadata, ParsedAnalysis, SourceFile
from histdocs.models.document import Document, DocumentCreate, DocumentPatch
from histdocs.models.entity import Entity, EntityInput
from histdocs.models.enums import DocumentType, EntityType, JobStatus
from histdocs.models.job import JobOptions, ProcessingJob

__all__ = [
    "AnalysisResult",
    "Document",
    "DocumentCreate",
    "DocumentPatch",
    "DocumentType",
    "Entity",
    "EntityInput",
    "EntityType",
    "FileContent",
    "FileMetadata",
    "JobOptions",
    "JobStatus",
    "ParsedAnalysis",
    "ProcessingJob",
    "SourceFile",
]
