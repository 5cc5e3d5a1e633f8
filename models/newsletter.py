"""Newsletter models."""

from pydantic import BaseModel, Field


class NewsletterDraft(BaseModel):
    """Title and Markdown body produced by the writer."""

    title: str = Field(description="Newsletter email title")
    content: str = Field(description="Email content in Markdown")


class WrittenNewsletter(NewsletterDraft):
    """Writer model output including its self-checks.

    A draft is only accepted when every check is true.
    """

    title: str = Field(min_length=20, max_length=100, description="Title of the newsletter email")
    is_written_in_output_language: bool = Field(
        description="Whether the content is written in the requested output language",
    )
    copyright_verified: bool = Field(
        description="Verification status of copyright compliance (true: verified, false: potential violation)",
    )
    fact_accuracy: bool = Field(
        description="Fact-based content from provided data only (true: facts only, false: unsupported content)",
    )

    @property
    def passed_checks(self) -> bool:
        return self.is_written_in_output_language and self.copyright_verified and self.fact_accuracy

    def draft(self) -> NewsletterDraft:
        return NewsletterDraft(title=self.title, content=self.content)


class Newsletter(BaseModel):
    """A publishable newsletter issue."""

    title: str
    content: str = Field(description="Markdown source")
    html_body: str = Field(description="Final HTML ready to send")
    issue_order: int = Field(description="Issue number")
    date: str = Field(description="Publication date, ISO YYYY-MM-DD")
