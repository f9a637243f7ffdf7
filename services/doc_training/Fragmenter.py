"""Token-bounded fragmenting of extracted document text.

Text is cut along structure first: Markdown-style headings (# to ####) open
a new section, blank lines separate paragraphs. Paragraphs of a section are
packed greedily into fragments up to the token budget. A paragraph that is
larger than the budget on its own is split on sentence ends and its
sentences are packed the same way; a single sentence larger than the
budget is kept whole.

Fragments never span two sections, are emitted in source order and are
never empty. Removing whitespace from the fragments' text and from the
input yields the same string.
"""

import re
from typing import Callable

import tiktoken

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Fragment

DEFAULT_MAX_TOKENS = 250
DEFAULT_TOKENIZER_MODEL = "text-embedding-3-small"
FALLBACK_ENCODING = "cl100k_base"
PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "

_HEADING_RE = re.compile(r"^(#{1,4})\s+(.*\S)\s*$")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.?!])\s+")


def _split_sections(text: str) -> list[tuple[str | None, str]]:
    """Group lines into (heading path, section text) pairs.

    The heading line stays part of its section's text. The path joins the
    titles of all enclosing headings, e.g. "Policies > Travel".
    """
    sections: list[tuple[str | None, list[str]]] = [(None, [])]
    heading_stack: list[str] = []
    for line in text.splitlines():
        match = _HEADING_RE.match(line.strip())
        if match:
            level = len(match.group(1))
            heading_stack = heading_stack[: level - 1] + [match.group(2)]
            sections.append((" > ".join(heading_stack), [line]))
        else:
            sections[-1][1].append(line)
    return [(heading, "\n".join(lines)) for heading, lines in sections if "".join(lines).strip()]


def _split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def _split_sentences(paragraph: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(paragraph) if s.strip()]


class Fragmenter:
    """Splits document text into fragments of at most max_tokens tokens.

    Tokens are counted with the embedding model's tokenizer unless a
    counter is injected.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        token_counter: Callable[[str], int] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self.max_tokens = int(helper_config.get_number_val("FRAGMENT_MAX_TOKENS", default=DEFAULT_MAX_TOKENS))
        self._tokenizer_model = helper_config.get_string_val("FRAGMENT_TOKENIZER_MODEL", default=DEFAULT_TOKENIZER_MODEL)
        self._token_counter = token_counter
        if self.max_tokens <= 0:
            raise ValueError(f"FRAGMENT_MAX_TOKENS must be positive, got {self.max_tokens}.")

    ##########################################
    ############### TOKENS ###################
    ##########################################

    def count_tokens(self, text: str) -> int:
        if self._token_counter is None:
            self._token_counter = self._load_tiktoken_counter()
        return self._token_counter(text)

    def _load_tiktoken_counter(self) -> Callable[[str], int]:
        try:
            encoding = tiktoken.encoding_for_model(self._tokenizer_model)
        except KeyError:
            self.logging.warning(
                "No tokenizer known for model '%s', counting with %s.", self._tokenizer_model, FALLBACK_ENCODING
            )
            encoding = tiktoken.get_encoding(FALLBACK_ENCODING)
        return lambda text: len(encoding.encode(text, disallowed_special=()))

    ##########################################
    ############## FRAGMENTS #################
    ##########################################

    def fragment(self, text: str, max_tokens: int | None = None) -> list[Fragment]:
        """Split text into ordered fragments.

        Args:
            text (str): The full extracted text of a document.
            max_tokens (int | None): Token budget per fragment, defaults to FRAGMENT_MAX_TOKENS.

        Returns:
            list[Fragment]: Fragments in source order; empty for blank input.
        """
        budget = max_tokens if max_tokens is not None else self.max_tokens
        if budget <= 0:
            raise ValueError(f"Token budget must be positive, got {budget}.")
        if not text or not text.strip():
            return []

        fragments: list[Fragment] = []
        for heading, section_text in _split_sections(text):
            for chunk in self._pack_section(section_text, budget):
                fragments.append(Fragment(sequence_index=len(fragments), text=chunk, heading=heading))

        self.logging.debug("Fragmented %d characters into %d fragments.", len(text), len(fragments))
        return fragments

    def _pack_section(self, section_text: str, budget: int) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []
        for paragraph in _split_paragraphs(section_text):
            if self.count_tokens(PARAGRAPH_SEPARATOR.join(current + [paragraph])) <= budget:
                current.append(paragraph)
                continue
            if current:
                chunks.append(PARAGRAPH_SEPARATOR.join(current))
                current = []
            if self.count_tokens(paragraph) <= budget:
                current = [paragraph]
            else:
                chunks.extend(self._pack_sentences(paragraph, budget))
        if current:
            chunks.append(PARAGRAPH_SEPARATOR.join(current))
        return chunks

    def _pack_sentences(self, paragraph: str, budget: int) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []
        for sentence in _split_sentences(paragraph):
            if not current or self.count_tokens(SENTENCE_SEPARATOR.join(current + [sentence])) <= budget:
                current.append(sentence)
                continue
            chunks.append(SENTENCE_SEPARATOR.join(current))
            current = [sentence]
        if current:
            chunks.append(SENTENCE_SEPARATOR.join(current))
        return chunks
