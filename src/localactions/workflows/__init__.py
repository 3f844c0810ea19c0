from localactions.workflows.index import Job, Workflow, find_workflow, scan
from localactions.workflows.placeholders import ExtractedName, PatternKind, extract

__all__ = [
    "ExtractedName",
    "Job",
    "PatternKind",
    "Workflow",
    "extract",
    "find_workflow",
    "scan",
]
