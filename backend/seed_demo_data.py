"""
Demo Seed Data Script

Creates one demo applicant with ground truth for a single business school:
- Priya Patel, MBA applicant with a GMAT score but no IELTS yet
- Harbour Business School (requires GMAT and IELTS, three essay prompts)
- One essay finished, one in draft; recommendation letters already requested

With OPENAI_API_KEY set, a timeline is generated for the applicant.
"""

import uuid
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session

from app.config import configure_logging, get_settings
from app.database import SessionLocal, engine, Base
from app.models import (
    User, University, EssayPrompt, Essay, EssayStatus, CalendarEvent,
    ApplicationTimeline, TimelinePhase, TimelineTask, DecisionTrace, EvidenceBundle
)
from app.orchestrators import generate_timeline_response
from app.services.text_generation_client import OpenAITextGenerator

DEMO_USER_ID = uuid.UUID('11111111-1111-1111-1111-111111111111')
DEMO_UNIVERSITY_ID = uuid.UUID('22222222-2222-2222-2222-222222222222')


def clear_all_data(db: Session):
    """Clear all existing data (for demo purposes only)"""
    print("Clearing existing data...")
    db.query(EvidenceBundle).delete()
    db.query(DecisionTrace).delete()
    db.query(TimelineTask).delete()
    db.query(TimelinePhase).delete()
    db.query(ApplicationTimeline).delete()
    db.query(CalendarEvent).delete()
    db.query(Essay).delete()
    db.query(EssayPrompt).delete()
    db.query(University).delete()
    db.query(User).delete()
    db.commit()
    print("✓ Data cleared")


def create_demo_applicant(db: Session):
    """
    MBA applicant: Priya Patel
    - GMAT 710, IELTS not taken yet
    - Career goals essay finished, leadership essay in draft
    - Recommendation letters requested
    """
    print("\nCreating demo applicant: Priya Patel...")

    priya = User(
        id=DEMO_USER_ID,
        email='priya.patel@example.com',
        hashed_password='not-a-real-hash',
        full_name='Priya Patel',
        study_level='MBA',
        gpa=3.7,
        test_scores='{"gmat": 710}',
        work_experience=True,
    )
    school = University(
        id=DEMO_UNIVERSITY_ID,
        name='Harbour Business School',
        location='Sydney, Australia',
        application_deadline=date.today() + timedelta(days=75),
        acceptance_rate=0.18,
        application_fee=150,
        currency='AUD',
        requires_gmat=True,
        requires_ielts=True,
    )
    db.add_all([priya, school])
    db.flush()

    prompts = [
        EssayPrompt(university_id=school.id, prompt_title='Career goals', word_limit=500, display_order=0),
        EssayPrompt(university_id=school.id, prompt_title='Leadership experience', word_limit=400, display_order=1),
        EssayPrompt(university_id=school.id, prompt_title='Why this school', word_limit=300, display_order=2),
    ]
    db.add_all(prompts)
    db.flush()

    db.add_all([
        Essay(user_id=priya.id, essay_prompt_id=prompts[0].id, title='Career goals',
              word_count=498, status=EssayStatus.COMPLETED, is_completed=True),
        Essay(user_id=priya.id, essay_prompt_id=prompts[1].id, title='Leadership experience',
              word_count=180, status=EssayStatus.DRAFT),
        CalendarEvent(user_id=priya.id, university_id=school.id, title='Request recommendation letters',
                      event_type='task', start_date=datetime.utcnow() - timedelta(days=5),
                      completion_status='completed'),
        CalendarEvent(user_id=priya.id, university_id=school.id, title='Book IELTS test date',
                      event_type='deadline', start_date=datetime.utcnow() + timedelta(days=14)),
    ])
    db.commit()
    print("✓ Applicant, school, essays and calendar events created")
    return priya, school


def generate_demo_timeline(db: Session, user: User, university: University):
    """Generate a timeline for the demo applicant"""
    print("\nGenerating timeline...")
    status, body = generate_timeline_response(
        db,
        OpenAITextGenerator(),
        {
            "targetEntity": {"id": str(university.id), "name": university.name},
            "userId": str(user.id),
            "forceRegenerate": True,
        },
    )
    if status != 200:
        print(f"❌ Generation failed ({status}): {body['message']}")
        return

    metadata = body["metadata"]
    print(f"✓ Timeline {metadata['timelineId']} stored")
    print(f"  Phases: {metadata['totalPhases']}, tasks: {metadata['totalTasks']}, "
          f"completed: {metadata['completedTasks']}")
    print(f"  Continuations used: {metadata['continuationsUsed']}, "
          f"tasks corrected: {metadata['tasksFixed']}")


def main():
    """Main seeding function"""
    configure_logging()
    print("="*60)
    print("Application Timeline Demo Data Seeding")
    print("="*60)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        clear_all_data(db)
        user, university = create_demo_applicant(db)

        if get_settings().OPENAI_API_KEY:
            generate_demo_timeline(db, user, university)
        else:
            print("\nOPENAI_API_KEY not set; skipping timeline generation")

        print("\n" + "="*60)
        print("✅ DEMO DATA SEEDED")
        print("="*60)
        print(f"  User ID:       {DEMO_USER_ID}")
        print(f"  University ID: {DEMO_UNIVERSITY_ID}")
        print("="*60)

    except Exception as e:
        print(f"\n❌ Error seeding data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    main()
