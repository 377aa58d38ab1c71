"""
Orchestrators package.

Orchestrators coordinate multiple services to implement complex workflows.
They handle business processes that span multiple services or domains.

Orchestrators should:
    - Coordinate multiple services
    - Handle complex business workflows
    - Manage transactions across services
    - Record a decision trace of every execution

Example:
    orchestrator = TimelineGenerationOrchestrator(db, generator)
    result = orchestrator.generate(
        request_id=str(uuid4()),
        target_entity={"id": str(university.id)},
        user_id=user.id,
    )

Difference between Services and Orchestrators:
    - Services: Single-responsibility, focused on one domain/entity
    - Orchestrators: Multi-service coordination, complex workflows
"""

from app.orchestrators.base import (
    BaseOrchestrator,
    OrchestrationError,
)
from app.orchestrators.timeline_generation_orchestrator import (
    TimelineGenerationOrchestrator,
    TimelineRequestError,
    error_response,
    generate_timeline_response,
)

__all__ = [
    "BaseOrchestrator",
    "OrchestrationError",
    "TimelineGenerationOrchestrator",
    "TimelineRequestError",
    "error_response",
    "generate_timeline_response",
]
