"""Case event handler: status broadcasts, merchant notices and contact emails.

Runs after the payment that opened, released or closed a case has committed.
"""

import json

from protean import handle
from protean.utils.globals import current_domain

from settlement.case.case import Case
from settlement.case.events import CaseClosed, CaseOpened, CaseReleased
from settlement.domain import settlement
from settlement.notifications.channel.realtime_port import AudienceScope
from settlement.notifications.fanout import NotificationFanout
from settlement.notifications.templates import EmailTemplate, Topic


def announce_case_status(fanout: NotificationFanout, case: Case):
    return fanout.publish(
        Topic.CASE_STATUS,
        {"caseId": str(case.id), "status": case.status, "releaseStatus": case.release_status},
        audience=case.tracking_code or str(case.id),
    )


@settlement.event_handler(part_of=Case)
class CaseNotificationsHandler:
    @handle(CaseOpened)
    def on_case_opened(self, event: CaseOpened) -> None:
        case = current_domain.repository_for(Case).get(event.case_id)
        fanout = NotificationFanout()
        announce_case_status(fanout, case)
        if case.contact_email:
            variables = {"case": {"code": case.code, "trackingCode": case.tracking_code}}
            fanout.send_email(EmailTemplate.CASE_CREATED_PAYMENT_SUCCESS, case.contact_email, variables)
            fanout.send_email(EmailTemplate.CASE_CREATED, case.contact_email, variables)

    @handle(CaseReleased)
    def on_case_released(self, event: CaseReleased) -> None:
        case = current_domain.repository_for(Case).get(event.case_id)
        fanout = NotificationFanout()
        announce_case_status(fanout, case)
        for merchant_id in json.loads(event.previous_merchants or "[]"):
            fanout.notify(merchant_id, f"Case {case.code} has been released.", scope=AudienceScope.USER)

    @handle(CaseClosed)
    def on_case_closed(self, event: CaseClosed) -> None:
        case = current_domain.repository_for(Case).get(event.case_id)
        fanout = NotificationFanout()
        announce_case_status(fanout, case)
        for merchant_id in case.managing_merchants():
            fanout.notify(merchant_id, f"Case {case.code} successfully closed.", scope=AudienceScope.USER)
        if case.contact_email:
            fanout.send_email(
                EmailTemplate.CASE_CLOSE_OFFER_PAYMENT_SUCCESS,
                case.contact_email,
                {"case": {"code": case.code}, "caseOffer": {"code": event.offer_code}},
            )
