from src.models.base import Base
from src.models.project import PipelineRunRecord, Project, ProjectSnapshot

__all__ = [
    "Base",
    "Project",
    "ProjectSnapshot",
    "PipelineRunRecord",
]
