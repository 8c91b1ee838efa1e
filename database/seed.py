# ScopeGuard - seed database with a demo institution
import asyncio
import logging
from datetime import date
from passlib.context import CryptContext
from sqlalchemy import select

from config import get_settings
from database import database
from .models import User, SubIndicator, AcademicYear, Evidence

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)


def _year(start: int, **flags) -> AcademicYear:
    return AcademicYear(
        name=f"{start}-{start + 1}",
        start_date=date(start, 6, 1),
        end_date=date(start + 1, 3, 31),
        **flags,
    )


async def seed():
    await database.init_db(get_settings().database_url)
    async with database.async_session() as session:
        # Check if already seeded
        r = await session.execute(select(User).limit(1))
        if r.scalar_one_or_none():
            logger.info("Database already seeded. Skip.")
            return

        # Users: one per role, plus an inactive teacher
        def user(email, name, role, password, is_active=True):
            return User(
                email=email,
                name=name,
                role=role,
                password_hash=pwd_context.hash(password),
                is_active=is_active,
            )

        admin = user("admin@school.test", "Admin User", "ADMIN", "admin123")
        t1 = user("teacher1@school.test", "Alice Teacher", "TEACHER", "teach1")
        t2 = user("teacher2@school.test", "Bob Teacher", "TEACHER", "teach2")
        t3 = user("teacher3@school.test", "Carol Former", "TEACHER", "teach3", is_active=False)
        iqa = user("iqa@school.test", "Ian Internal", "IQA_EVALUATOR", "iqa123")
        eqa = user("eqa@school.test", "Eve External", "EQA_EVALUATOR", "eqa123")
        exe = user("exec@school.test", "Erin Executive", "EXECUTIVE", "exec123")
        session.add_all([admin, t1, t2, t3, iqa, eqa, exe])
        await session.flush()  # get IDs

        # Sub-indicators (scopes); IQA owns the first two, EQA the first
        s1 = SubIndicator(code="1.1.1", name="Learning outcomes are published", owner_id=iqa.id)
        s2 = SubIndicator(code="1.1.2", name="Curriculum is reviewed yearly", owner_id=iqa.id)
        s3 = SubIndicator(code="2.1.1", name="Student support services exist", owner_id=eqa.id)
        session.add_all([s1, s2, s3])

        # Academic years: current one open for upload and evaluation
        this_year = date.today().year
        old = _year(this_year - 5, is_active=False)
        previous = _year(this_year - 1, is_active=False)
        current = _year(this_year, upload_window_open=True, evaluation_window_open=True)
        session.add_all([old, previous, current])
        await session.flush()

        session.add_all([
            Evidence(uploader_id=t1.id, sub_indicator_id=s1.id, academic_year_id=current.id,
                     original_name="syllabus.pdf", file_size=120_000, mime_type="application/pdf"),
            Evidence(uploader_id=t1.id, sub_indicator_id=s3.id, academic_year_id=current.id,
                     original_name="support-plan.docx", file_size=48_000,
                     mime_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
            Evidence(uploader_id=t2.id, sub_indicator_id=s2.id, academic_year_id=previous.id,
                     original_name="review-minutes.pdf", file_size=300_000, mime_type="application/pdf"),
            Evidence(uploader_id=t2.id, sub_indicator_id=s1.id, academic_year_id=old.id,
                     original_name="archive.pdf", file_size=90_000, mime_type="application/pdf"),
        ])
        await session.commit()
    logger.info("Seed completed.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())
