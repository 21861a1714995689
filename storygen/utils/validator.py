"""Input validation — checks the generation request before the graph runs."""

from dataclasses import replace

from storygen.errors import GenerationError
from storygen.state import GenerationRequest

_IMAGE_TYPES = {"base64", "url"}


def validate_request(request: GenerationRequest) -> GenerationRequest:
    """Validate that the request carries a non-empty prompt and well-formed images.

    Returns a copy with the prompt stripped.
    Raises GenerationError (MISSING_PROMPT / IMAGE_PROCESSING_ERROR) otherwise.
    """
    if not isinstance(request.prompt, str) or not request.prompt.strip():
        raise GenerationError(
            "No prompt provided",
            code="MISSING_PROMPT",
            suggestion="Please provide a description of what you want to generate",
        )

    for i, image in enumerate(request.images):
        if image.type not in _IMAGE_TYPES:
            raise _image_error(f"images[{i}] has unsupported type '{image.type}'.")
        if image.type == "base64" and not image.data:
            raise _image_error(f"images[{i}] is missing base64 data.")
        if image.type == "url" and not image.url:
            raise _image_error(f"images[{i}] is missing a url.")

    if request.prompt == request.prompt.strip():
        return request
    return replace(request, prompt=request.prompt.strip())


def _image_error(details: str) -> GenerationError:
    return GenerationError(
        "Failed to process images",
        code="IMAGE_PROCESSING_ERROR",
        details=details,
        recoverable=True,
        suggestion="Try again without images or use a different format",
    )
