"""Operation synthesis endpoint."""

from fastapi import APIRouter, Depends

from graphql_synth.dependencies import get_operation_generator
from graphql_synth.models.api import GenerateOperationRequest
from graphql_synth.models.operation import GeneratedOperation
from graphql_synth.services.operation_generator import OperationGenerator
from graphql_synth.utils.logging import get_logger

logger = get_logger("operations_api")

router = APIRouter(prefix="/operations", tags=["operations"])


@router.post(
    "/generate",
    response_model=GeneratedOperation,
    summary="Generate a GraphQL operation from natural language",
)
async def generate_operation(
    request: GenerateOperationRequest,
    generator: OperationGenerator = Depends(get_operation_generator),
) -> GeneratedOperation:
    """
    Turn a natural-language request into a GraphQL operation.

    An operation that never passed validation is still returned, with
    ``valid`` false and the last validation errors in ``diagnostics``.
    Returns 404 when no root field is relevant to the request.
    """
    return await generator.generate(
        request.input_text,
        min_similarity_score=request.min_similarity_score,
        max_documents=request.max_documents,
        max_validation_retries=request.max_validation_retries,
    )
