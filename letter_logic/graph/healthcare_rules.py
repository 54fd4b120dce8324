"""
Built-in federal and internal healthcare correspondence rules.

Evaluated as global rules after traversal when
``LETTER_LOGIC_BUILTIN_RULES`` is enabled. Each rule is satisfied
by the component it names appearing anywhere in the letter.
"""

from __future__ import annotations

from letter_logic.graph.compliance import ComplianceRule


HEALTHCARE_RULES: tuple[ComplianceRule, ...] = (
    ComplianceRule(
        rule_id="erisa_appeal_rights",
        name="ERISA Appeal Rights Notice",
        trigger=(
            "{{claim.status}} == 'DENIED' || {{decision}} == 'ADVERSE' "
            "|| {{dispositionCode}} == 'DENIED' || {{request.dispositionCode}} == 'DENIED'"
        ),
        level="blocking",
        required_action="Adverse benefit determinations must include the appeal rights notice",
        required_component_id="appeal-rights-notice",
        regulation="ERISA Section 503, 29 CFR 2560.503-1",
    ),
    ComplianceRule(
        rule_id="medical_necessity_disclosure",
        name="Medical Necessity Disclosure",
        trigger=(
            "CONTAINS(LOWER({{denialReason}}), 'medical necessity') "
            "|| CONTAINS(LOWER({{denialReason}}), 'not medically necessary') "
            "|| CONTAINS(LOWER({{dispositionDesc}}), 'medical necessity')"
        ),
        level="required",
        required_action="Medical necessity determinations must include the disclaimer",
        required_component_id="medical-necessity-disclaimer",
        regulation="CMS Guidelines, Medicare Advantage Requirements",
    ),
    ComplianceRule(
        rule_id="expedited_review_timelines",
        name="Expedited Review Timelines",
        trigger="{{urgencyCode}} == 'URGENT' || {{expedited}} == true || {{request.urgencyCode}} == 'URGENT'",
        level="blocking",
        required_action="Urgent requests must state expedited review timelines",
        required_component_id="expedited-review-timelines",
        regulation="ERISA Expedited Review Requirements, 29 CFR 2560.503-1(f)(2)",
    ),
    ComplianceRule(
        rule_id="peer_to_peer_info",
        name="Peer-to-Peer Review Information",
        trigger=(
            "({{requestType}} == 'PRIOR_AUTH' || {{requestType}} == 'CONCURRENT_REVIEW') "
            "&& {{status}} == 'DENIED' && {{provider.type}} == 'PHYSICIAN'"
        ),
        level="recommended",
        required_action="Offer peer-to-peer review to the requesting physician",
        required_component_id="peer-to-peer-info",
        regulation="Industry Best Practice",
    ),
    ComplianceRule(
        rule_id="language_access",
        name="Language Access Requirements",
        trigger="{{member.preferredLanguageCode}} != null && {{member.preferredLanguageCode}} != 'en'",
        level="blocking",
        required_action="Non-English speakers must receive the interpreter services notice",
        required_component_id="interpreter-services-notice",
        regulation="Section 1557 of the Affordable Care Act",
    ),
    ComplianceRule(
        rule_id="benefit_limitations",
        name="Benefit Limitations Notice",
        trigger="{{claim.status}} == 'APPROVED' || {{dispositionCode}} == 'APPROVED'",
        level="recommended",
        required_action="Approvals should describe benefit limitations and exclusions",
        required_component_id="benefit-limitations-notice",
        regulation="Internal Policy",
    ),
    ComplianceRule(
        rule_id="provider_network_notice",
        name="Provider Network Notice",
        trigger=(
            "{{provider.networkStatus}} == 'OUT_OF_NETWORK' "
            "|| CONTAINS(LOWER({{denialReason}}), 'out of network')"
        ),
        level="recommended",
        required_action="Explain in-network and out-of-network options",
        required_component_id="provider-network-notice",
        regulation="Network Adequacy Requirements",
    ),
    ComplianceRule(
        rule_id="external_review_rights",
        name="External Review Rights",
        trigger="{{appeal.levelCode}} == 'FINAL' || {{finalDenial}} == true",
        level="blocking",
        required_action="Final denials must describe the external review process",
        required_component_id="external-review-notice",
        regulation="Section 2719 of the Public Health Service Act",
    ),
    ComplianceRule(
        rule_id="prescription_drug_coverage",
        name="Prescription Drug Coverage Notice",
        trigger=(
            "{{service.type}} == 'PRESCRIPTION' || {{service.category}} == 'PHARMACY' "
            "|| MATCHES({{service.code}}, '^J[0-9]{4}$')"
        ),
        level="recommended",
        required_action="Prescription drug denials should include formulary information",
        required_component_id="prescription-drug-notice",
        regulation="Medicare Part D Requirements",
    ),
    ComplianceRule(
        rule_id="emergency_services_notice",
        name="Emergency Services Notice",
        trigger=(
            "{{service.type}} == 'EMERGENCY' || {{placeOfServiceCode}} == '23' "
            "|| MATCHES({{diagnosis.code}}, '^(S|T)[0-9]{2}')"
        ),
        level="required",
        required_action="Emergency services letters must describe surprise billing protections",
        required_component_id="emergency-services-notice",
        regulation="No Surprises Act, Emergency Medical Treatment and Labor Act",
    ),
)
