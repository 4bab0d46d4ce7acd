"""Grounded answer synthesis relayed as a stream of events.

Ranked chunks are grouped by the book (collection) they came from, keeping
rank order inside each group, and rendered into a context block:

    ### Book: Research
    Source 1 (Q3 report): quarterly revenue rose 12% ...

    Source 2 (Earnings call): ...

A single system instruction constrains the model to that context.  The
model's output is relayed fragment by fragment as
:class:`~mindlens.models.rag.AnswerEvent` items and always finishes with
one ``done`` event, including when generation fails part-way (an ``error``
event comes first; fragments already sent stand).

When retrieval found nothing the model is not called at all: a fixed
"no relevant information" message for the scope is emitted instead.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

import structlog

from mindlens.interfaces.llm_provider import ILLMProvider
from mindlens.models.rag import AnswerEvent, RetrievedChunk
from mindlens.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_UNKNOWN_BOOK = "Unknown Book"
_UNKNOWN_SOURCE = "Unknown"


def no_results_message(scope_title: str | None) -> str:
    """Return the message sent when nothing in scope matched the question.

    *scope_title* is the book's title for a single-book scope, ``None`` when
    every book was searched.
    """
    if scope_title is None:
        return (
            "I couldn't find any relevant information in your books to answer that "
            "question. Try adding more sources or rephrasing your query."
        )
    return (
        f'I couldn\'t find any relevant information in the book "{scope_title}" to answer '
        "that question. Try adding more sources to this book or rephrasing your query."
    )


def assemble_context(chunks: list[RetrievedChunk]) -> str:
    """Render ranked chunks as per-book context sections.

    Books appear in the order their best chunk ranks; sources are numbered
    from 1 within each book.
    """
    by_book: dict[str, list[RetrievedChunk]] = {}
    for retrieved in chunks:
        title = retrieved.chunk.metadata.collection_title or _UNKNOWN_BOOK
        by_book.setdefault(title, []).append(retrieved)

    sections: list[str] = []
    for title, group in by_book.items():
        sources = "\n\n".join(
            f"Source {i} ({r.chunk.metadata.attachment_name or _UNKNOWN_SOURCE}): {r.chunk.text}"
            for i, r in enumerate(group, start=1)
        )
        sections.append(f"### Book: {title}\n{sources}")
    return "\n\n".join(sections)


def build_system_prompt(context: str, scope_title: str | None) -> str:
    """Return the system instruction that grounds the answer in *context*."""
    scope_phrase = "books" if scope_title is None else f'book "{scope_title}"'
    return (
        "You are an AI assistant helping a user query their personal knowledge base "
        "organized in books.\n\n"
        f"Here's the relevant context from their {scope_phrase}:\n\n"
        f"{context}\n\n"
        "Instructions:\n"
        "- Only answer based on the provided context\n"
        "- Be specific and cite which book/source you're referencing\n"
        "- If the context doesn't contain enough information, say so\n"
        "- Provide comprehensive answers when possible\n"
        "- Use a helpful and conversational tone\n"
        "- If referencing multiple books, organize your answer clearly"
    )


class AnswerStreamer:
    """Streams an LLM answer grounded in retrieved chunks.

    Parameters
    ----------
    llm:
        The generation backend.
    temperature:
        Sampling temperature passed to the backend.
    max_tokens:
        Upper bound on answer length.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def answer(
        self,
        query: str,
        chunks: list[RetrievedChunk],
        scope_title: str | None = None,
    ) -> AsyncIterator[AnswerEvent]:
        """Yield ``content`` events for the answer, then exactly one ``done``.

        Closing the iterator early (the caller went away) closes the
        underlying generation stream.
        """
        if not chunks:
            logger.info("answer_no_results", scope=scope_title or "all")
            yield AnswerEvent.content(no_results_message(scope_title))
            yield AnswerEvent.done()
            return

        system_prompt = build_system_prompt(assemble_context(chunks), scope_title)
        fragments = 0
        try:
            async with aclosing(
                self._llm.stream(
                    system_prompt,
                    query,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                )
            ) as stream:
                async for fragment in stream:
                    if not fragment:
                        continue
                    fragments += 1
                    yield AnswerEvent.content(fragment)
        except GenerationError as exc:
            logger.error(
                "answer_generation_failed",
                provider=self._llm.get_provider_name(),
                fragments_sent=fragments,
                error=str(exc),
            )
            yield AnswerEvent.error(exc.message)

        logger.info(
            "answer_streamed",
            provider=self._llm.get_provider_name(),
            chunks=len(chunks),
            fragments=fragments,
        )
        yield AnswerEvent.done()
