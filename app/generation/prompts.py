"""
Prompt composition for blog post generation.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

RESPONSE_CONTRACT = """Return the result ONLY as a valid JSON object with these fields:
- title: string, the post title
- summary: string, a two or three sentence summary
- content_markdown: string, the full post in Markdown
- cover_image_url: string, URL of a cover image
- estimated_read_time_minutes: integer
- tags: array of strings
- suggested_slug: string (optional)
Do not add any text outside the JSON object."""


@dataclass(frozen=True)
class ThemeContext:
    """Detached snapshot of a Theme row used while composing a request."""
    id: int
    name: str
    prompt: str
    description: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    tone: Optional[str] = None
    target_audience: Optional[str] = None
    guidelines: Optional[str] = None

    @classmethod
    def from_model(cls, theme) -> "ThemeContext":
        return cls(
            id=theme.id,
            name=theme.name,
            prompt=theme.prompt,
            description=theme.description,
            keywords=list(theme.keywords or []),
            tone=theme.tone,
            target_audience=theme.target_audience,
            guidelines=theme.guidelines,
        )

    def metadata(self) -> Dict[str, Any]:
        return {
            "theme_id": self.id,
            "name": self.name,
            "keywords": list(self.keywords),
            "tone": self.tone,
            "target_audience": self.target_audience,
        }


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    theme_metadata: Dict[str, Any]


def build_generation_request(theme: ThemeContext, working_title: Optional[str] = None) -> GenerationRequest:
    """Embed the theme's seed, keywords, tone, audience and guidelines in one prompt."""
    lines = [theme.prompt.strip()]

    if working_title:
        lines.append(f'Working title: "{working_title}".')
    if theme.description:
        lines.append(f"Theme: {theme.name} - {theme.description}")
    if theme.keywords:
        lines.append("Cover some of these keywords: " + ", ".join(theme.keywords) + ".")
    if theme.tone:
        lines.append(f"Tone: {theme.tone}.")
    if theme.target_audience:
        lines.append(f"Target audience: {theme.target_audience}.")
    if theme.guidelines:
        lines.append(f"Guidelines: {theme.guidelines}")

    lines.append("The post must be informative, engaging and useful to our readers.")
    lines.append("")
    lines.append(RESPONSE_CONTRACT)

    return GenerationRequest(prompt="\n".join(lines), theme_metadata=theme.metadata())
