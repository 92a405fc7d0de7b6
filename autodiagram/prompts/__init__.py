from autodiagram.prompts.builders import (
    build_generation_user_prompt,
    build_planner_user_prompt,
    build_repair_user_prompt,
    enhance_prompt_with_sources,
)
from autodiagram.prompts.system import fix_system_prompt, generation_system_prompt, planner_system_prompt
from autodiagram.prompts.template import PromptTemplate

__all__ = [
    "PromptTemplate",
    "build_generation_user_prompt",
    "build_planner_user_prompt",
    "build_repair_user_prompt",
    "enhance_prompt_with_sources",
    "fix_system_prompt",
    "generation_system_prompt",
    "planner_system_prompt",
]
