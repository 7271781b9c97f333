"""
Emcee

Decision core that bridges a live meeting to an AI agent.

Philosophy:
- Cheap local matching first, LLM only when the local answer is ambiguous
- Every response has an explicit, inspectable lifecycle
- A failing collaborator never stops the engine
- No ambient global state: every service is an owned instance

Usage:
    from emcee.common import load_config, LLMClient
    from emcee.listener import NameMatcher, CaptionAggregator, HybridMentionDetector
    from emcee.responder import BehaviorProcessor, ResponseQueue, PatternStore
"""

__version__ = "0.1.0"
