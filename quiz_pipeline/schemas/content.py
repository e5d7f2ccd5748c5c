"""
Generated content, one model per layout.

The `layout` field is the tag: `parse_content` picks the variant from it and
validates that variant's own field set. Each variant reports the two fields
that carry its meaning (`semantic_fields`), which the fingerprinting uses.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator


class ContentValidationError(ValueError):
    """AI output does not match the layout it was asked for"""


class BaseContent(BaseModel):
    class Config:
        extra = "ignore"

    def semantic_fields(self) -> tuple[str, str]:
        raise NotImplementedError


class McqContent(BaseContent):
    layout: Literal["mcq"] = "mcq"
    question: str
    options: dict[str, str]
    answer: str
    explanation: str
    cta: str = "Follow for more!"
    content_type: Literal["multiple_choice", "true_false"] = "multiple_choice"
    hook: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def question_from_content(cls, data):
        # English prompts return the stem as "content"
        if isinstance(data, dict) and not data.get("question") and data.get("content"):
            data = {**data, "question": data["content"]}
        return data

    @model_validator(mode="after")
    def check_options(self):
        if self.content_type == "true_false":
            if self.options != {"A": "True", "B": "False"}:
                raise ValueError("true_false options must be exactly A=True, B=False")
        elif len(self.options) < 2:
            raise ValueError("multiple_choice needs at least two options")
        if self.answer not in self.options:
            raise ValueError(f"answer {self.answer!r} is not one of the options")
        return self

    def semantic_fields(self) -> tuple[str, str]:
        return self.question, self.options.get(self.answer, self.answer)


class QuickTipContent(BaseContent):
    layout: Literal["quick_tip"] = "quick_tip"
    hook: str
    action: str
    result: str
    cta: str

    def semantic_fields(self) -> tuple[str, str]:
        return self.action, self.result


class CommonMistakeContent(BaseContent):
    layout: Literal["common_mistake"] = "common_mistake"
    hook: str
    mistake: str
    correct: str
    practice: str
    cta: str

    def semantic_fields(self) -> tuple[str, str]:
        return self.mistake, self.correct


class QuickFixContent(BaseContent):
    layout: Literal["quick_fix"] = "quick_fix"
    hook: str
    basic_word: str
    advanced_word: str
    cta: str

    def semantic_fields(self) -> tuple[str, str]:
        return self.basic_word, self.advanced_word


class UsageDemoContent(BaseContent):
    layout: Literal["usage_demo"] = "usage_demo"
    hook: str
    target_word: str
    wrong_example: str
    right_example: str
    practice: str
    cta: str

    def semantic_fields(self) -> tuple[str, str]:
        return self.target_word, self.right_example


class ChallengeContent(BaseContent):
    layout: Literal["challenge"] = "challenge"
    hook: str
    setup: str
    instructions: str
    challenge_type: str
    reveal: str
    answer: str
    cta: str

    def semantic_fields(self) -> tuple[str, str]:
        return self.setup, self.answer


class SimplifiedWordContent(BaseContent):
    layout: Literal["simplified_word"] = "simplified_word"
    word: str
    definition: str
    usage: str
    part_of_speech: Optional[str] = None
    pronunciation: Optional[str] = None

    def semantic_fields(self) -> tuple[str, str]:
        return self.word, self.definition


class BeforeAfterContent(BaseContent):
    layout: Literal["before_after"] = "before_after"
    hook: str
    before: str
    after: str
    result: str
    cta: str

    def semantic_fields(self) -> tuple[str, str]:
        return self.before, self.after


QuizContent = Annotated[
    Union[
        McqContent,
        QuickTipContent,
        CommonMistakeContent,
        QuickFixContent,
        UsageDemoContent,
        ChallengeContent,
        SimplifiedWordContent,
        BeforeAfterContent,
    ],
    Field(discriminator="layout"),
]

_content_adapter = TypeAdapter(QuizContent)


def parse_content(data: dict, layout: str) -> BaseContent:
    """Validate raw AI output as the variant for `layout`"""
    try:
        return _content_adapter.validate_python({**data, "layout": layout})
    except ValidationError as e:
        raise ContentValidationError(f"{layout} content invalid: {e.errors()[0]['msg']}") from e


CONTENT_MODELS: dict[str, type[BaseContent]] = {
    model.model_fields["layout"].default: model
    for model in (
        McqContent,
        QuickTipContent,
        CommonMistakeContent,
        QuickFixContent,
        UsageDemoContent,
        ChallengeContent,
        SimplifiedWordContent,
        BeforeAfterContent,
    )
}
