"""Example: fire a form submission against a stored workflow."""

import asyncio

from siteflow import create_runtime
from siteflow.contracts import TriggerType, Workflow, WorkflowStep


async def main():
    runtime = create_runtime()
    await runtime.repository.save_workflow(
        Workflow(
            id="wf-contact",
            site_id="site-1",
            name="Contact form",
            trigger_type=TriggerType.FORM_SUBMIT,
            steps=[
                WorkflowStep(
                    id="store",
                    action_type="create_record",
                    config={
                        "collectionId": "contacts",
                        "data": {"name": "{{trigger.name}}", "email": "{{trigger.email}}"},
                    },
                ),
                WorkflowStep(
                    id="reply",
                    action_type="send_email",
                    order=1,
                    config={
                        "to": "{{trigger.email}}",
                        "subject": "Thanks for reaching out, {{trigger.name}}",
                        "body": "<p>We will get back to you shortly.</p>",
                    },
                ),
            ],
        )
    )

    outcome = await runtime.dispatcher.trigger_workflows(
        "site-1",
        TriggerType.FORM_SUBMIT,
        {"name": "Ada", "email": "ada@example.com"},
    )
    for workflow_id, result in outcome.results.items():
        print(workflow_id, "completed" if result.success else result.error)

    await runtime.aclose()


if __name__ == "__main__":
    asyncio.run(main())
