"""
Name: Prompt Loader

Responsibilities:
  - Load prompt templates from files
  - Support versioning via PAGELENS_PROMPT_VERSION
  - Cache loaded templates for performance

Collaborators:
  - crosscutting.config: prompt_version setting
  - pagelens/prompts/*.md: template files

Notes:
  - {version}_system.md: system prompt for the local model session
  - {version}_proofread.md: proofreading instruction (JSON record schema)
  - {version}_request.md: inline request, {instruction} and {content}
  - {version}_request_file.md: request referencing an uploaded file
"""

from functools import lru_cache
from pathlib import Path

from ...crosscutting.logger import logger

# R: Directory containing prompt templates
PROMPTS_DIR = Path(__file__).parent.parent.parent / "prompts"


class PromptLoader:
    """
    R: Load and cache prompt templates by version.
    """

    def __init__(self, version: str = "v1", prompts_dir: Path = PROMPTS_DIR):
        self.version = version
        self._prompts_dir = prompts_dir
        self._templates: dict[str, str] = {}

    def get_template(self, name: str) -> str:
        """
        R: Get a template by name, loading from file if needed.

        Raises:
            FileNotFoundError: If the template file doesn't exist
        """
        if name not in self._templates:
            self._templates[name] = self._load_template(name)
        return self._templates[name]

    def _load_template(self, name: str) -> str:
        filepath = self._prompts_dir / f"{self.version}_{name}.md"

        if not filepath.exists():
            logger.error(
                f"Prompt template not found: {filepath}",
                extra={"version": self.version, "template": name},
            )
            raise FileNotFoundError(f"Prompt template not found: {filepath}")

        template = filepath.read_text(encoding="utf-8")
        logger.debug(
            "Loaded prompt template",
            extra={"version": self.version, "template": name, "chars": len(template)},
        )
        return template

    def system_prompt(self) -> str:
        return self.get_template("system").strip()

    def proofread_instruction(self) -> str:
        return self.get_template("proofread").strip()

    def format_request(self, instruction: str, content: str) -> str:
        """R: Inline request: instruction and content in one prompt."""
        return self.get_template("request").format(
            instruction=instruction, content=content
        )

    def format_file_request(self, instruction: str) -> str:
        """R: Request whose content travels as an attached file."""
        return self.get_template("request_file").format(instruction=instruction)


@lru_cache
def get_prompt_loader() -> PromptLoader:
    """
    R: Get singleton PromptLoader with configured version.
    """
    from ...crosscutting.config import get_settings

    return PromptLoader(version=get_settings().prompt_version)
