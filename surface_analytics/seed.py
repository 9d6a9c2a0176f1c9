"""
Create (or update) a project so a site can start sending events.

    python -m surface_analytics.seed --api-key proj_test_12345 --name "Test Project"
"""

import argparse
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from .database import Base, SessionLocal, engine
from .logging_config import configure_logging
from .models import Project

logger = structlog.get_logger()

DEFAULT_API_KEY = "proj_test_12345"
DEFAULT_NAME = "Test Project"
DEFAULT_DOMAIN = "localhost:3000"


def seed_project(
    db: Session,
    api_key: str = DEFAULT_API_KEY,
    name: str = DEFAULT_NAME,
    domain: Optional[str] = DEFAULT_DOMAIN,
) -> Project:
    """Insert the project, or refresh name/domain if the key already exists."""
    project = db.query(Project).filter(Project.api_key == api_key).first()
    if project is None:
        project = Project(api_key=api_key, name=name, domain=domain)
        db.add(project)
        action = "created"
    else:
        project.name = name
        project.domain = domain
        action = "updated"

    db.commit()
    db.refresh(project)
    logger.info("Project seeded", action=action, project_id=project.id, api_key=api_key)
    return project


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Seed a Surface Analytics project")
    parser.add_argument("--api-key", default=DEFAULT_API_KEY, help="Public key embedded in the tag")
    parser.add_argument("--name", default=DEFAULT_NAME, help="Project display name")
    parser.add_argument("--domain", default=DEFAULT_DOMAIN, help="Site domain, informational")
    args = parser.parse_args(argv)

    configure_logging()
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        project = seed_project(db, args.api_key, args.name, args.domain)
    finally:
        db.close()

    print(f"Project '{project.name}' ready.")
    print(f'Tag: <script async src="/tag.js?id={project.api_key}"></script>')


if __name__ == "__main__":
    main()
