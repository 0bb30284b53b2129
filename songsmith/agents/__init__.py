"""
Agents for Songsmith workflows.

- artifacts: pydantic schemas for briefs, songs, melodies and evaluations
- brief: deterministic creative brief derivation
- state: Plan / Action / Observation / Reflection / RunResult models
- policy: generic generate -> evaluate -> improve DecisionPolicy
- orchestrator: guardrailed plan/act/observe/reflect control loop
- runtime: settings-driven entry points (run_lyrics_workflow, run_melody_workflow)

policy, orchestrator and runtime depend on songsmith.tools; import them from
their modules directly.
"""

from songsmith.agents.artifacts import (
    CreativeBrief,
    SongStructure,
    Section,
    Evaluation,
    LyricsEvaluation,
    MelodyEvaluation,
    MelodyStructure,
    MidiTrack,
    MidiNote,
)
from songsmith.agents.brief import create_creative_brief
from songsmith.agents.state import (
    Plan,
    Action,
    Observation,
    Reflection,
    AgentStep,
    ProgressUpdate,
    RunResult,
)

__all__ = [
    # Artifacts
    "CreativeBrief",
    "SongStructure",
    "Section",
    "Evaluation",
    "LyricsEvaluation",
    "MelodyEvaluation",
    "MelodyStructure",
    "MidiTrack",
    "MidiNote",
    # Brief
    "create_creative_brief",
    # Loop models
    "Plan",
    "Action",
    "Observation",
    "Reflection",
    "AgentStep",
    "ProgressUpdate",
    "RunResult",
]
