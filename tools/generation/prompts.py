"""
Prompt construction for the scene-generating model.

The system prompt is fixed text plus two variable blocks: constraints for
the requested complexity tier and limitations of the account's plan.
"""
from __future__ import annotations

from schemas.render_request import ComplexityTier, PlanTier

BASE_PROMPT = """You are a Manim (Mathematical Animation Engine) expert. Generate clean, executable Manim Community Edition code that creates educational mathematical animations.

CRITICAL REQUIREMENTS:
- Use only Manim Community Edition syntax (from manim import *)
- Create a Scene class that inherits from Scene
- Use construct() method for the animation
- Include proper imports and class structure
- Make animations educational and visually clear
- Add comments explaining key steps
- Ensure code is production-ready and error-free

RESPONSE FORMAT:
1. Brief description of the animation (2-3 sentences)
2. Python code block wrapped in ```python and ```
3. Estimated duration in seconds

TECHNICAL CONSTRAINTS:"""

COMPLEXITY_INSTRUCTIONS: dict[ComplexityTier, str] = {
    ComplexityTier.BASIC: """
- Keep animations simple (3-5 objects max)
- Use basic shapes: Circle, Square, Rectangle, Text, NumberLine
- Simple transformations: FadeIn, FadeOut, Transform
- Duration: 5-15 seconds
- Focus on single concept visualization""",
    ComplexityTier.INTERMEDIATE: """
- Moderate complexity (5-10 objects)
- Mathematical objects: Axes, Graph, NumberPlane, MathTex
- Transformations: ReplacementTransform, Write, DrawBorderThenFill
- Duration: 15-30 seconds
- Can show step-by-step processes""",
    ComplexityTier.ADVANCED: """
- Complex visualizations (10+ objects)
- Advanced features: ValueTracker, updater functions, 3D scenes
- Complex transformations: morphing, parametric animations
- Duration: 30-60 seconds
- Multi-step educational content""",
}

PLAN_LIMITATIONS: dict[PlanTier, str] = {
    PlanTier.BASIC: """
- Maximum 30 seconds animation
- No 3D scenes
- Basic color schemes only""",
    PlanTier.INTERMEDIATE: """
- Maximum 60 seconds animation
- Can use 3D scenes
- Advanced color schemes and styling""",
    PlanTier.ADVANCED: """
- Maximum 120 seconds animation
- Full 3D capabilities
- Custom styling and advanced features
- Can use plugins and external libraries""",
}


def build_system_prompt(complexity: "ComplexityTier | str", plan: "PlanTier | str") -> str:
    complexity = ComplexityTier(complexity)
    plan = PlanTier(plan)
    return (
        f"{BASE_PROMPT}\n\n"
        f"COMPLEXITY LEVEL: {complexity.value.upper()}\n{COMPLEXITY_INSTRUCTIONS[complexity]}\n\n"
        f"USER PLAN LIMITATIONS: {plan.value.upper()}\n{PLAN_LIMITATIONS[plan]}"
    )


def build_full_prompt(prompt: str, complexity: "ComplexityTier | str", plan: "PlanTier | str") -> str:
    return (
        f"{build_system_prompt(complexity, plan)}\n\n"
        f"User Request: {prompt}\n\n"
        "Generate the Manim animation code:"
    )
