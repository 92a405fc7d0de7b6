"""Agent exports."""
from autodiagram.agents.generation_agent import GenerationAgent
from autodiagram.agents.planner_agent import PlannerAgent
from autodiagram.agents.repair_agent import RepairAgent

__all__ = ["GenerationAgent", "PlannerAgent", "RepairAgent"]
