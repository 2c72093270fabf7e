"""roadmap - planning state for milestones, epics, stories and requirements.

Keeps a shared document store consistent: a lease-based advisory lock for
mutations, a referential-integrity validator for the
milestone -> epic -> story -> requirement graph, and a coverage/derived-status
engine computed from PRD text and story state.
"""

__version__ = "0.4.0"
