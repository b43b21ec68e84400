"""Committee administration."""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from portal.core.errors import InvalidStateError, NotFoundError, ValidationError
from portal.models import Committee, CommitteeCreate, CommitteeMember, Document, User
from portal.services.audit import AuditService, RequestContext


class CommitteeService:
    """Create, rename, delete committees and manage their members."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def get(self, committee_id: int) -> Committee:
        committee = await self.session.get(Committee, committee_id)
        if committee is None:
            raise NotFoundError("Committee not found")
        return committee

    async def list_all(self) -> list[Committee]:
        result = await self.session.execute(select(Committee).order_by(Committee.name))
        return list(result.scalars().all())

    async def _check_unique_name(self, name: str, exclude_id: int | None = None) -> None:
        query = select(Committee).where(Committee.name == name)
        if exclude_id is not None:
            query = query.where(Committee.id != exclude_id)
        if (await self.session.execute(query)).scalar_one_or_none() is not None:
            raise ValidationError(f'A committee named "{name}" already exists')

    async def create(
        self, data: CommitteeCreate, admin: User, context: RequestContext | None = None
    ) -> Committee:
        name = data.name.strip()
        if not name:
            raise ValidationError("Committee name is required")
        await self._check_unique_name(name)

        committee = Committee(name=name, description=data.description)
        self.session.add(committee)
        await self.session.commit()
        await self.session.refresh(committee)

        await self.audit.log(
            "committee_created",
            user=admin,
            entity_type="Committee",
            entity_id=committee.id,
            details={"name": committee.name},
            context=context,
        )
        return committee

    async def update(
        self,
        committee_id: int,
        data: CommitteeCreate,
        admin: User,
        context: RequestContext | None = None,
    ) -> Committee:
        committee = await self.get(committee_id)
        name = data.name.strip()
        if not name:
            raise ValidationError("Committee name is required")
        await self._check_unique_name(name, exclude_id=committee_id)

        changes = {}
        if committee.name != name:
            changes["name"] = {"from": committee.name, "to": name}
        if committee.description != data.description:
            changes["description"] = {"from": committee.description, "to": data.description}
        committee.name = name
        committee.description = data.description
        self.session.add(committee)
        await self.session.commit()
        await self.session.refresh(committee)

        await self.audit.log(
            "committee_updated",
            user=admin,
            entity_type="Committee",
            entity_id=committee.id,
            details={"changes": changes},
            context=context,
        )
        return committee

    async def delete(
        self, committee_id: int, admin: User, context: RequestContext | None = None
    ) -> None:
        """Delete an empty committee.

        Raises:
            InvalidStateError: If the committee still has documents
        """
        committee = await self.get(committee_id)
        document_count = (
            await self.session.execute(
                select(func.count()).select_from(Document).where(Document.committee_id == committee_id)
            )
        ).scalar_one()
        if document_count:
            raise InvalidStateError("Cannot delete committee with existing documents")

        memberships = await self.session.execute(
            select(CommitteeMember).where(CommitteeMember.committee_id == committee_id)
        )
        for membership in memberships.scalars().all():
            await self.session.delete(membership)
        await self.session.delete(committee)
        await self.session.commit()

        await self.audit.log(
            "committee_deleted",
            user=admin,
            entity_type="Committee",
            entity_id=committee_id,
            details={"name": committee.name},
            context=context,
        )

    async def members(self, committee_id: int) -> list[User]:
        await self.get(committee_id)
        result = await self.session.execute(
            select(User)
            .join(CommitteeMember, CommitteeMember.user_id == User.id)
            .where(CommitteeMember.committee_id == committee_id)
            .order_by(User.last_name, User.first_name)
        )
        return list(result.scalars().all())

    async def set_membership(
        self,
        committee_id: int,
        user_id: int,
        member: bool,
        admin: User,
        context: RequestContext | None = None,
    ) -> None:
        """Add (``member=True``) or remove a user. No-op if already in that state."""
        committee = await self.get(committee_id)
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        if member == (committee_id in user.committee_ids):
            return
        if member:
            user.committees.append(committee)
        else:
            user.committees = [c for c in user.committees if c.id != committee_id]
        self.session.add(user)
        await self.session.commit()

        await self.audit.log(
            "committee_member_added" if member else "committee_member_removed",
            user=admin,
            entity_type="Committee",
            entity_id=committee_id,
            details={"userId": user_id, "userEmail": user.email},
            context=context,
        )
