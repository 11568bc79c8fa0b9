"""Static sample data served when the backend is unconfigured or failing."""

from __future__ import annotations

from typing import List

from projecthub.models import CommentTask, File, Project, Stage


def sample_projects() -> List[Project]:
    return [
        Project(
            id="1",
            title="Website for Xee Design",
            description=(
                "Complete website redesign and development for Xee Design agency with "
                "modern UI/UX, responsive design, and CMS integration"
            ),
            client_id="3",
            client_name="Priya Sharma",
            deadline="2025-03-15",
            progress_percentage=65,
            assigned_employees=["2", "4"],
            created_at="2025-01-01",
            status="active",
            priority="high",
        ),
        Project(
            id="2",
            title="E-commerce Mobile App",
            description=(
                "Native mobile application for online shopping with payment gateway "
                "integration and inventory management"
            ),
            client_id="5",
            client_name="Rajesh Kumar",
            deadline="2025-04-30",
            progress_percentage=30,
            assigned_employees=["2"],
            created_at="2025-01-10",
            status="active",
            priority="medium",
        ),
    ]


def sample_stages() -> List[Stage]:
    return [
        Stage(
            id="1",
            project_id="1",
            name="Planning",
            notes="Project requirements gathering, wireframes, and technical specifications completed",
            progress_percentage=100,
            approval_status="approved",
            order=0,
        ),
        Stage(
            id="2",
            project_id="1",
            name="Design",
            notes="UI/UX design mockups and prototypes ready for client review",
            progress_percentage=90,
            approval_status="pending",
            order=1,
        ),
        Stage(
            id="3",
            project_id="1",
            name="Development",
            notes="Frontend development in progress, backend API integration started",
            progress_percentage=45,
            approval_status="pending",
            order=2,
        ),
    ]


def sample_comment_tasks() -> List[CommentTask]:
    return [
        CommentTask(
            id="1",
            stage_id="2",
            project_id="1",
            text="Please update the color scheme to match our brand guidelines. The current blue is too dark.",
            added_by="3",
            author_name="Priya Sharma",
            author_role="client",
            status="open",
            assigned_to="2",
            timestamp="2025-01-15T10:30:00Z",
        ),
        CommentTask(
            id="2",
            stage_id="3",
            project_id="1",
            text="Need to implement responsive design for mobile devices",
            added_by="1",
            author_name="Arjun Singh",
            author_role="manager",
            status="in-progress",
            assigned_to="2",
            deadline="2025-02-01",
            timestamp="2025-01-12T14:20:00Z",
        ),
        CommentTask(
            id="3",
            stage_id="3",
            project_id="1",
            text="Database optimization completed, performance improved by 40%",
            added_by="2",
            author_name="Rakesh Gupta",
            author_role="employee",
            status="done",
            timestamp="2025-01-14T16:45:00Z",
        ),
    ]


def sample_files() -> List[File]:
    return [
        File(
            id="1",
            stage_id="1",
            project_id="1",
            filename="project-requirements.pdf",
            file_url="#",
            uploaded_by="1",
            uploader_name="Arjun Singh",
            timestamp="2025-01-02T09:00:00Z",
            size=2048576,
            file_type="pdf",
            category="requirements",
            description="Initial project requirements and specifications",
            download_count=5,
            last_downloaded="2025-01-15T14:30:00Z",
            last_downloaded_by="2",
            is_archived=False,
            tags=["requirements", "initial", "specifications"],
        ),
        File(
            id="2",
            stage_id="2",
            project_id="1",
            filename="design-mockups.fig",
            file_url="#",
            uploaded_by="2",
            uploader_name="Rakesh Gupta",
            timestamp="2025-01-08T11:15:00Z",
            size=5242880,
            file_type="fig",
            category="assets",
            description="Figma design mockups for homepage and key pages",
            download_count=3,
            last_downloaded="2025-01-14T16:20:00Z",
            last_downloaded_by="3",
            is_archived=False,
            tags=["design", "mockups", "figma"],
        ),
    ]


def sample_dataset() -> dict:
    """Every sample collection as JSON-ready dicts (used by the CLI)."""
    return {
        "projects": [p.model_dump(mode="json") for p in sample_projects()],
        "stages": [s.model_dump(mode="json") for s in sample_stages()],
        "comment_tasks": [c.model_dump(mode="json") for c in sample_comment_tasks()],
        "files": [f.model_dump(mode="json") for f in sample_files()],
    }
