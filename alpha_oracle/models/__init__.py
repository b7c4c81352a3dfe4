# =============================================================================
# Models Package: Pydantic V2 Schemas
# =============================================================================
# research.py holds the pipeline objects (PlanStep, ExecutionResult,
# ChatMessage). requests.py and responses.py define the HTTP contract.
# All wire JSON is camelCase.
# =============================================================================
