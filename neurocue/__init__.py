"""
NeuroCue

Voice-command capture for live meeting transcripts.

Philosophy:
- The transcript arrives cumulatively; only the unseen suffix is ever scanned
- Spoken brackets ("start chart" ... "end chart", "hey neuro" ... "over")
  delimit what gets structured
- Nothing reaches storage without passing the refinement gate
- At most one open automation of a kind per conversation

Usage:
    from neurocue.common import load_config, LLMClient
    from neurocue.common.schemas import VisualSpec, AutomationRecord
    from neurocue.capture import TriggerEngine, build_engine
"""

__version__ = "0.1.0"
