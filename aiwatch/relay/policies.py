from typing import Protocol

from aiwatch.schemas import ChatRequest

MARKDOWN_FORMAT = "markdown"
MARKDOWN_TRIGGERS = ("in markdown", "using markdown")
LLAMACPP_MARKERS = ("llama", "llama.cpp")

MARKDOWN_INSTRUCTION = (
    "Please format your response using markdown. Use proper headings, bullet points, "
    "numbered lists, code blocks with syntax highlighting, and tables where appropriate."
)

# Characters per token for the input estimate. Not a tokenizer.
CHARS_PER_TOKEN = 4


class TextClassifier(Protocol):
    def classify(self, text: str) -> bool: ...


class SubstringClassifier:
    def __init__(self, markers: tuple[str, ...]):
        self.markers = tuple(m.lower() for m in markers)

    def classify(self, text: str) -> bool:
        lowered = (text or "").lower()
        return any(marker in lowered for marker in self.markers)


MARKDOWN_POLICY = SubstringClassifier(MARKDOWN_TRIGGERS)
LLAMACPP_POLICY = SubstringClassifier(LLAMACPP_MARKERS)


def wants_markdown(request: ChatRequest, classifier: TextClassifier = MARKDOWN_POLICY) -> bool:
    if request.format == MARKDOWN_FORMAT:
        return True
    return classifier.classify(request.message)


def is_llamacpp(model: str, base_url: str, classifier: TextClassifier = LLAMACPP_POLICY) -> bool:
    return classifier.classify(model) or classifier.classify(base_url)


def estimate_input_tokens(request: ChatRequest) -> int:
    """Rough input size: a quarter of the characters of every message."""
    tokens = sum(len(m.content) // CHARS_PER_TOKEN for m in request.messages)
    return tokens + len(request.message) // CHARS_PER_TOKEN
