# glowglitch/api/v1/email_marketing/templates.py
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.errors import ConflictError, NotFoundError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.marketing import EmailCampaign, EmailTemplate, EmailTrigger
from glowglitch.models.user import User
from glowglitch.schemas.marketing import (
    TemplateCategory,
    TemplateCreate,
    TemplateOut,
    TemplatePreviewRequest,
    TemplateSummaryOut,
    TemplateType,
    TemplateUpdate,
    TemplateVariable,
)
from glowglitch.services import templates as rendering
from glowglitch.services.email_analytics import template_summary

router = APIRouter(prefix="/admin/email-marketing/templates", tags=["email-templates"])


async def _get_template_or_404(db: AsyncSession, template_id: uuid.UUID) -> EmailTemplate:
    template = await db.get(EmailTemplate, template_id)
    if template is None:
        raise NotFoundError("TEMPLATE_NOT_FOUND", "Template not found")
    return template


def _variables(explicit: Optional[list[TemplateVariable]], html: str) -> list[dict[str, Any]]:
    if explicit is not None:
        return [v.model_dump(by_alias=True, exclude_none=True) for v in explicit]
    return rendering.extract_variables(html)


@router.get("")
async def list_templates(
    category: Optional[TemplateCategory] = None,
    template_type: Optional[TemplateType] = Query(None, alias="type"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    filters = []
    if category is not None:
        filters.append(EmailTemplate.category == category)
    if template_type is not None:
        filters.append(EmailTemplate.template_type == template_type)
    if is_active is not None:
        filters.append(EmailTemplate.is_active.is_(is_active))

    total = (await db.execute(select(func.count()).select_from(EmailTemplate).where(*filters))).scalar_one()
    items = (
        await db.execute(
            select(EmailTemplate)
            .where(*filters)
            .order_by(EmailTemplate.is_default.desc(), EmailTemplate.updated_at.desc(), EmailTemplate.id)
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).scalars().all()

    return ok(
        {
            "templates": [TemplateSummaryOut.model_validate(t) for t in items],
            "summary": await template_summary(db),
            "pagination": paging.describe(total),
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    design = rendering.normalize_design(payload.design.model_dump(by_alias=True))
    template = EmailTemplate(
        name=payload.name.strip(),
        description=payload.description,
        category=payload.category,
        template_type=payload.type,
        design=design,
        html=payload.html,
        css=payload.css if payload.css is not None else rendering.default_css(design),
        variables=_variables(payload.variables, payload.html),
        preview_data=payload.preview_data,
        thumbnail=payload.thumbnail,
        is_active=payload.is_active,
        is_default=False,
        created_by=str(admin.id),
    )
    db.add(template)
    await db.commit()
    return ok({"template": TemplateOut.model_validate(template), "message": "Template created successfully"})


@router.get("/{template_id}")
async def get_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    template = await _get_template_or_404(db, template_id)
    return ok({"template": TemplateOut.model_validate(template)})


@router.put("/{template_id}")
async def update_template(
    template_id: uuid.UUID,
    payload: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    template = await _get_template_or_404(db, template_id)
    changes = payload.model_dump(exclude_unset=True)

    for field in ("description", "category", "thumbnail", "is_active", "css", "preview_data"):
        if changes.get(field) is not None:
            setattr(template, field, changes[field])
    if changes.get("name"):
        template.name = changes["name"].strip()
    if changes.get("type"):
        template.template_type = changes["type"]
    if payload.design is not None:
        template.design = rendering.normalize_design(
            {**(template.design or {}), **payload.design.model_dump(by_alias=True, exclude_unset=True)}
        )
    if payload.html is not None:
        template.html = payload.html
    if payload.variables is not None or payload.html is not None:
        template.variables = _variables(payload.variables, template.html)

    await db.commit()
    return ok({"template": TemplateOut.model_validate(template), "message": "Template updated successfully"})


@router.delete("/{template_id}")
async def delete_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    template = await _get_template_or_404(db, template_id)

    campaigns = (
        await db.execute(
            select(func.count())
            .select_from(EmailCampaign)
            .where(EmailCampaign.template_id == template.id, EmailCampaign.status.not_in(("completed", "cancelled")))
        )
    ).scalar_one()
    triggers = (
        await db.execute(
            select(func.count())
            .select_from(EmailTrigger)
            .where(EmailTrigger.template_id == template.id, EmailTrigger.status == "active")
        )
    ).scalar_one()
    if campaigns or triggers:
        raise ConflictError(
            "TEMPLATE_IN_USE",
            "Template is used by a campaign or an active trigger",
            details={"campaigns": int(campaigns), "triggers": int(triggers)},
        )

    await db.delete(template)
    await db.commit()
    return ok({"message": "Template deleted successfully", "deletedId": str(template_id)})


@router.post("/{template_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    source = await _get_template_or_404(db, template_id)
    copy = EmailTemplate(
        name=f"{source.name} (Copy)",
        description=source.description,
        category=source.category,
        template_type=source.template_type,
        design=dict(source.design or {}),
        html=source.html,
        css=source.css,
        variables=[dict(v) for v in source.variables or []],
        preview_data=dict(source.preview_data or {}),
        thumbnail=source.thumbnail,
        is_active=False,
        is_default=False,
        created_by=str(admin.id),
    )
    db.add(copy)
    await db.commit()
    return ok({"template": TemplateOut.model_validate(copy), "message": "Template duplicated successfully"})


@router.post("/{template_id}/preview")
async def preview_template(
    template_id: uuid.UUID,
    payload: Optional[TemplatePreviewRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    template = await _get_template_or_404(db, template_id)
    data = {**(template.preview_data or {}), **(payload.data if payload else {})}
    variables = template.variables or []

    return ok(
        {
            "html": rendering.render(template.html, rendering.with_defaults(variables, data)),
            "css": template.css,
            "missingVariables": rendering.missing_required(variables, data),
        }
    )
