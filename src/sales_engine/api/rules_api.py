"""
Rules API - FastAPI router for pricing rule management.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..engine.errors import InvalidRule, NotFound
from ..services.rules_service import RuleDraft
from .schemas import RuleCreate, RuleResponse, ValidationResponse
from .state import Container, get_container

router = APIRouter(prefix="/api/rules", tags=["rules"])


@router.get("", response_model=list[RuleResponse])
async def list_rules(
    product_id: Optional[str] = None,
    include_inactive: bool = True,
    container: Container = Depends(get_container),
):
    """List pricing rules, optionally for one product."""
    rules = container.rules.list_rules(product_id=product_id, include_inactive=include_inactive)
    return [RuleResponse.from_rule(rule) for rule in rules]


@router.get("/stats")
async def get_stats(container: Container = Depends(get_container)):
    """Get rule statistics."""
    return container.rules.get_stats()


@router.get("/{rule_id}", response_model=RuleResponse)
async def get_rule(rule_id: str, container: Container = Depends(get_container)):
    """Get a single rule by ID."""
    try:
        return RuleResponse.from_rule(container.rules.get_rule(rule_id))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("", response_model=RuleResponse)
async def create_rule(rule_data: RuleCreate, container: Container = Depends(get_container)):
    """Create a new pricing rule."""
    try:
        created = container.rules.create_rule(RuleDraft(**rule_data.model_dump()))
        return RuleResponse.from_rule(created)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRule as e:
        raise HTTPException(status_code=400, detail={"errors": e.errors})


@router.post("/validate", response_model=ValidationResponse)
async def validate_rule(rule_data: RuleCreate, container: Container = Depends(get_container)):
    """Validate a rule without saving."""
    result = container.rules.validate_rule(RuleDraft(**rule_data.model_dump()))
    return ValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


@router.post("/{rule_id}/deactivate", response_model=RuleResponse)
async def deactivate_rule(rule_id: str, container: Container = Depends(get_container)):
    """Deactivate a rule (rules are never deleted)."""
    try:
        return RuleResponse.from_rule(container.rules.deactivate_rule(rule_id))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
