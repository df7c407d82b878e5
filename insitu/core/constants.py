"""
User-facing messages, prompt presets and other fixed values
"""
from dataclasses import dataclass
from typing import Dict, List

LOADING_MESSAGES: List[str] = [
    "Placing your products in a new world...",
    "AI is getting creative with your items...",
    "Composing the perfect scene...",
    "Rendering pixels of perfection...",
    "Hold tight, magic is happening...",
]

PLACEMENT_PREAMBLE = "Create a realistic product placement image."
PLACEMENT_SUFFIX = (
    "Make sure the products look naturally integrated into the environment "
    "with proper lighting, shadows, and perspective."
)

ERROR_MESSAGES: Dict[str, str] = {
    "generic": "An unexpected error occurred. Please try again.",
    "file_size": "File size must be less than {max_mb}MB",
    "file_format": "Only {formats} files are supported",
    "max_files": "You can upload a maximum of {max_files} images",
    "no_images": "Please upload at least one product image",
    "no_prompt": "Please enter a prompt or choose a preset",
    "unauthenticated": "You must be logged in to generate images.",
    "in_progress": "An image is already being generated. Please wait for it to finish.",
    "generation": "Failed to generate image. Please try a different prompt or image.",
    "gateway": "Failed to generate image with Gemini API.",
    "login": "Invalid email or password",
    "register": "Failed to create account. Email may already be in use.",
    "google": "Failed to authenticate with Google",
    "logout": "Failed to logout",
    "restricted": "Access is currently restricted. Please contact the administrator.",
}


@dataclass(frozen=True)
class PromptPreset:
    id: str
    name: str
    prompt: str
    category: str


PROMPT_PRESETS: List[PromptPreset] = [
    PromptPreset(
        "modern-home",
        "Modern Home",
        "Place the product(s) in a bright, modern home interior setting with natural lighting.",
        "indoor",
    ),
    PromptPreset(
        "office-desk",
        "Office Desk",
        "Place the product(s) on a clean, wooden office desk next to a laptop and coffee cup.",
        "indoor",
    ),
    PromptPreset(
        "cozy-cafe",
        "Cozy Café",
        "Place the product(s) on a small table in a cozy, well-lit café with latte art coffee nearby.",
        "indoor",
    ),
    PromptPreset(
        "minimalist-loft",
        "Minimalist Loft",
        "Situate the product(s) in a minimalist industrial loft apartment with concrete floors and large windows.",
        "indoor",
    ),
    PromptPreset(
        "beach-setting",
        "Beach Setting",
        "Place the product(s) on clean sand of a beautiful beach with calm ocean in the background during golden hour.",
        "outdoor",
    ),
    PromptPreset(
        "garden-scene",
        "Garden Scene",
        "Place the product(s) in a natural outdoor garden setting with soft natural lighting and greenery.",
        "outdoor",
    ),
    PromptPreset(
        "forest-floor",
        "Forest Floor",
        "Place the product(s) on a mossy forest floor, surrounded by ferns and dappled sunlight.",
        "outdoor",
    ),
    PromptPreset(
        "studio-shot",
        "Studio Shot",
        "Place the product(s) on a solid color background in a professional photo studio with perfect lighting.",
        "studio",
    ),
    PromptPreset(
        "intelligent",
        "Intelligent Placement",
        "Analyze the product image(s) and place them in the most suitable, aesthetically pleasing, "
        "and realistic environment that highlights their features and intended use.",
        "auto",
    ),
]

PRESETS_BY_ID: Dict[str, PromptPreset] = {preset.id: preset for preset in PROMPT_PRESETS}

# Generation settings recorded alongside each image
DEFAULT_QUALITY = "standard"
DEFAULT_SIZE = "auto"
