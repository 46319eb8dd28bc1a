"""
LLM-backed helpers.

Key Components:
- llm_client: Unified LLM client for OpenAI/Anthropic
- fuzzy_matcher: Organization name normalization and matching
- translator: Batch translation of organization names and roles
"""

from profilebuilder.agentic.llm_client import LLMClient, LLMResponse, get_llm_client
from profilebuilder.agentic.fuzzy_matcher import OrganizationNameMatcher, get_default_matcher
from profilebuilder.agentic.translator import Translator
