"""Instruction text sent to the vision models alongside the image."""
from __future__ import annotations

LANGUAGE_INSTRUCTIONS = {
    "english": "Please respond in English.",
    "czech": "Please respond in Czech (Česky).",
    "polish": "Please respond in Polish (Polski).",
    "german": "Please respond in German (Deutsch).",
}

DETAIL_WORDS = {
    "brief": "brief",
    "detailed": "detailed",
    "extensive": "comprehensive",
}

LENGTH_INSTRUCTIONS = {
    "short": "Keep the output short, roughly 50 to 100 words.",
    "normal": "Aim for a normal length of roughly 150 to 250 words.",
    "long": "Write a long, thorough output of roughly 300 to 500 words.",
}

STYLE_INSTRUCTIONS = {
    "basic-ai-image-generator": (
        "Write a clear, plain-language description of the image that can be used as a prompt for a "
        "general AI image generator. Describe the main subject, the setting, the dominant colors, the "
        "lighting and the overall mood in flowing sentences. Do not add headings, lists or commentary."
    ),
    "midjourney": (
        "Write the description as a Midjourney prompt: a single line of comma-separated keywords and "
        "short phrases, no longer than 40 words. Start with the main subject, then add the setting, "
        "art style, lighting, color palette, composition and mood. Do not write full sentences and do "
        "not add parameters such as --ar or --v."
    ),
    "flux1": (
        "Write the description as a FLUX.1 prompt in natural language. Open with the main subject and "
        "what it is doing, then describe the environment and background, the lighting, the camera angle "
        "and lens, and close with the artistic or photographic style. Use complete, descriptive sentences "
        "ordered from most to least important."
    ),
    "gpt-image": (
        "Write the description as a GPT-Image prompt with a technical, systematic structure. Cover, in "
        "this order: subject, composition and framing, perspective, lighting, color palette, materials "
        "and textures, and rendering style. State each aspect precisely and avoid vague adjectives."
    ),
    "imagen4": (
        "Write the description as an Imagen 4 prompt with a poetic, sensory tone. Evoke the atmosphere, "
        "the quality of the light, the textures, the implied sounds and the emotions of the scene in "
        "vivid, evocative language, while keeping the main subject clearly identifiable."
    ),
}

DEFAULT_LANGUAGE = "english"
DEFAULT_DETAIL_LEVEL = "detailed"
DEFAULT_OUTPUT_LENGTH = "normal"
DEFAULT_OUTPUT_STYLE = "basic-ai-image-generator"


def compose_prompt(language: str, detail_level: str, output_length: str, output_style: str) -> str:
    """Build the model instruction from the four user-chosen axes.

    Unknown values fall back to English, a detailed description, normal
    length and the basic style respectively.
    """
    language_text = LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS[DEFAULT_LANGUAGE])
    style_text = STYLE_INSTRUCTIONS.get(output_style, STYLE_INSTRUCTIONS[DEFAULT_OUTPUT_STYLE])
    detail_word = DETAIL_WORDS.get(detail_level, DETAIL_WORDS[DEFAULT_DETAIL_LEVEL])
    length_text = LENGTH_INSTRUCTIONS.get(output_length, LENGTH_INSTRUCTIONS[DEFAULT_OUTPUT_LENGTH])
    return " ".join(
        [
            language_text,
            style_text,
            f"Provide a {detail_word} description of the image.",
            length_text,
        ]
    )
