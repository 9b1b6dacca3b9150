"""Wrap design prompts shared by every image provider.

The template is a flat 2D layout of vehicle panels: black outline contours
around white fill areas. Every provider gets the same design rules so the
output stays printable regardless of which backend produced it.
"""

DESIGN_RULES = """CRITICAL DESIGN RULES:
1. STRICTLY PRESERVE the original image layout, aspect ratio, and black outline contours.
2. Apply graphics ONLY within the white spaces of the template parts.
3. Do NOT paint over the background (keep it white/transparent as in original).
4. Do NOT distort the shapes of the car parts.
5. The output must look like a flat 2D printable vehicle wrap file ready for production.
6. Do not add any text unless explicitly requested in the theme."""

SYSTEM_INSTRUCTION = f"""You are an expert vehicle wrap designer AI assistant.
Your task is to analyze vehicle wrap templates and generate custom designs.

{DESIGN_RULES}"""


def build_vision_prompt(theme: str) -> str:
    """Prompt for a vision model that turns template + theme into an image-model prompt."""
    return f"""You are an expert vehicle wrap designer. Analyze this vehicle wrap template image and create a detailed design description.

The template shows a 2D flat layout of vehicle parts with:
- Black outline contours (MUST be preserved exactly)
- White fill areas (where design should be applied)
- Specific vehicle parts layout

User's design theme: "{theme}"

CRITICAL REQUIREMENTS:
1. The design must preserve ALL black outline contours exactly as shown
2. Design elements should ONLY be applied within the white areas
3. The layout, proportions, and part shapes must remain unchanged
4. The output should be a flat 2D printable design file
5. Do not add text unless explicitly requested

Generate a detailed, specific prompt for creating this vehicle wrap design that another AI image generator can use. The prompt should describe:
- The exact design theme and style
- Color scheme and textures
- Graphic elements and patterns
- How to preserve the template structure"""


def build_image_prompt(description: str) -> str:
    """Prompt for a text-only image model (no template input)."""
    return (
        f"Create a professional vehicle wrap design: {description}\n\n"
        "Style: Flat 2D technical drawing, black outlines defining vehicle parts, with the requested "
        "design theme applied only within the outlined areas. Clean, production-ready layout."
    )


def build_text_to_image_prompt(theme: str) -> str:
    """Compact prompt for diffusion models with short context windows."""
    return (
        f"Professional vehicle wrap design: {theme}. "
        "Flat 2D technical drawing style, black outlines defining vehicle parts, "
        "clean production-ready layout, high quality, detailed design, vector art style."
    )


def build_edit_prompt(theme: str) -> str:
    """Prompt for multimodal models that receive the template image alongside."""
    return (
        f'Apply this design theme to the vehicle template: "{theme}"\n\n'
        "Please generate an image that follows the design rules. The template shows vehicle parts "
        "with black outlines and white fill areas. Apply the design theme only within the white "
        "areas while preserving all black outlines exactly."
    )
