"""
Analysis module.

Best-effort scoring of resumes, video introductions and interview
transcripts through external function endpoints.
"""

from candidate_pipeline.analysis.gateway import ACCEPTED_JOB_DOCUMENTS, AnalysisGateway

__all__ = ["ACCEPTED_JOB_DOCUMENTS", "AnalysisGateway"]
