"""
Analysis and retrieval services for ContractGuard.
"""

from contractguard.services.chunker import TextChunker
from contractguard.services.clause_extractor import ClauseExtractor
from contractguard.services.embedding_service import EmbeddingService
from contractguard.services.llm_service import GroqProvider, ProviderChain
from contractguard.services.risk_scorer import RiskScorer, compute_risk_score
from contractguard.services.search_service import RetrievalEngine
from contractguard.services.summarizer import Summarizer
from contractguard.services.text_extractor import TextExtractor

__all__ = [
    "TextChunker",
    "ClauseExtractor",
    "EmbeddingService",
    "GroqProvider",
    "ProviderChain",
    "RiskScorer",
    "compute_risk_score",
    "RetrievalEngine",
    "Summarizer",
    "TextExtractor",
]
