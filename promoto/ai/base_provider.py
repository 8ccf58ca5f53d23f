"""Promoto — Abstract AI Provider."""

from abc import ABC, abstractmethod


class AIProvider(ABC):
    """Abstract base for LLM completion.

    Providers send one system instruction and one user message and return the
    raw text answer. Parsing the answer is the caller's job.
    """

    name: str = ""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's free-text answer.

        Args:
            system_prompt: Fixed instruction set for the task.
            user_prompt: The content to work on.

        Raises:
            RuntimeError: If the provider is not configured.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and ready."""
        ...
