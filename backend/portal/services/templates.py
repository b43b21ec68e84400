"""Email template administration."""


from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.errors import NotFoundError
from portal.models import EmailTemplate, EmailTemplateUpdate, User
from portal.models.types import utcnow
from portal.services.audit import AuditService, RequestContext


class TemplateService:
    """List and edit notification templates."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_all(self) -> list[EmailTemplate]:
        result = await self.session.execute(select(EmailTemplate).order_by(EmailTemplate.key))
        return list(result.scalars().all())

    async def update(
        self,
        template_id: int,
        data: EmailTemplateUpdate,
        admin: User,
        context: RequestContext | None = None,
    ) -> EmailTemplate:
        template = await self.session.get(EmailTemplate, template_id)
        if template is None:
            raise NotFoundError("Template not found")

        changed = [
            name
            for name in ("subject", "body")
            if getattr(template, name) != getattr(data, name)
        ]
        template.subject = data.subject
        template.body = data.body
        template.updated_by = admin.id
        template.updated_at = utcnow()
        self.session.add(template)
        await self.session.commit()
        await self.session.refresh(template)

        await AuditService(self.session).log(
            "template_updated",
            user=admin,
            entity_type="EmailTemplate",
            entity_id=template.id,
            details={"key": template.key, "changedFields": changed},
            context=context,
        )
        return template
