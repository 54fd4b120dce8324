"""
Node type catalog.

Every node type is a closed pydantic config model plus a ``NodeTypeDef``
naming its editor label, palette group and how its outgoing edges branch.
Editor aliases (``IfNode``, ``SwitchCaseNode``...) resolve to the canonical
snake_case type name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from letter_logic.graph.context import DataType
from letter_logic.graph.formatting import FormatOptions, TextCase


BranchingKind = Literal["sequence", "boolean", "cases", "channel", "fallback", "loop", "terminal"]
RuleLevel = Literal["none", "recommended", "required", "blocking"]


class UnknownNodeType(KeyError):
    """Raised when a node type (or alias) is not in the catalog."""


class NodeConfig(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class EmptyConfig(NodeConfig):
    name: str | None = None


class ConditionConfig(NodeConfig):
    expression: str = Field(min_length=1)


class ExpressionConfig(NodeConfig):
    """Either a full ``expression`` or ``operands`` combined with ``operator``."""

    expression: str | None = None
    operands: list[str] = Field(default_factory=list)
    operator: Literal["and", "or"] = "and"

    @model_validator(mode="after")
    def _require_source(self) -> ExpressionConfig:
        if not self.expression and not self.operands:
            raise ValueError("expression node needs 'expression' or 'operands'")
        return self


class SwitchConfig(NodeConfig):
    expression: str = Field(min_length=1)
    cases: list[str] = Field(default_factory=list)


class LoopConfig(NodeConfig):
    array_field: str = Field(min_length=1)
    item_variable: str = "item"
    index_variable: str | None = None
    template: str | None = None
    filter: str | None = None
    separator: str = "\n"
    max_items: int | None = Field(default=None, ge=0)


class TableColumn(NodeConfig):
    header: str
    value: str


class TableLoopConfig(NodeConfig):
    array_field: str = Field(min_length=1)
    item_variable: str = "row"
    index_variable: str | None = None
    columns: list[TableColumn] = Field(min_length=1)
    filter: str | None = None
    caption: str | None = None
    max_items: int | None = Field(default=None, ge=0)


class BlockConfig(NodeConfig):
    block_id: str = Field(min_length=1)
    content: str | None = None
    language: str | None = None
    variation: str | None = None


class ComponentInsertConfig(NodeConfig):
    component_id: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    compliance_flags: list[str] = Field(default_factory=list)


class DynamicTextConfig(NodeConfig):
    text: str


class FormattingConfig(NodeConfig):
    bold: bool = False
    italic: bool = False
    underline: bool = False
    css_class: str | None = None
    text_case: TextCase | None = None
    styles: dict[str, str] = Field(default_factory=dict)
    condition: str | None = None


class AlertStyleConfig(NodeConfig):
    level: Literal["info", "warning", "critical"] = "info"
    title: str | None = None


class HideConfig(NodeConfig):
    condition: str = Field(min_length=1)


class LocaleStyleConfig(NodeConfig):
    locale: str = Field(min_length=2)


class MandatedNoticeConfig(NodeConfig):
    block_id: str
    compliance_flag: str


class CmsDisclosureConfig(MandatedNoticeConfig):
    block_id: str = "cms-disclosure"
    compliance_flag: str = "cms_disclosure"


class HipaaNoticeConfig(MandatedNoticeConfig):
    block_id: str = "hipaa-notice"
    compliance_flag: str = "hipaa_notice"


class LanguageAccessConfig(MandatedNoticeConfig):
    block_id: str = "language-access"
    compliance_flag: str = "language_access"


class ChannelConfig(NodeConfig):
    channels: list[str] = Field(default_factory=list)


class ChannelFallbackConfig(NodeConfig):
    primary: str = Field(min_length=1)
    fallback: str = Field(min_length=1)
    requires: str | None = None


class SetLanguageConfig(NodeConfig):
    language: str = Field(min_length=1)


class SetVariationConfig(NodeConfig):
    variation: str = Field(min_length=1)


class SetVariableConfig(NodeConfig):
    variable: str = Field(min_length=1)
    expression: str = Field(min_length=1)


class DerivedVariableConfig(SetVariableConfig):
    data_type: DataType | None = None
    format: FormatOptions | None = None


class DataCallConfig(NodeConfig):
    provider: str = Field(min_length=1)
    namespace: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    timeout_seconds: float | None = Field(default=None, gt=0)
    max_retries: int | None = Field(default=None, ge=0)
    critical: bool = False


class QueryConfig(DataCallConfig):
    namespace: str = Field(min_length=1)


class ApiCallConfig(DataCallConfig):
    namespace: str = Field(min_length=1)
    method: Literal["GET", "POST"] = "GET"
    path: str | None = None


class PushDataConfig(DataCallConfig):
    payload: dict[str, Any] = Field(default_factory=dict)


class FhirQueryConfig(DataCallConfig):
    namespace: str = Field(min_length=1)
    resource_type: str = Field(min_length=1)


class DataJoinConfig(NodeConfig):
    left: str = Field(min_length=1)
    right: str = Field(min_length=1)
    left_key: str = Field(min_length=1)
    right_key: str | None = None
    namespace: str = Field(min_length=1)
    how: Literal["inner", "left"] = "inner"


class DiagnosisMatchConfig(NodeConfig):
    codes: list[str] = Field(min_length=1)
    codes_field: str = "member.diagnoses"
    code_field: str = "code"
    prefix_match: bool = True

    @field_validator("codes")
    @classmethod
    def _upper_codes(cls, value: list[str]) -> list[str]:
        return [code.strip().upper() for code in value]


class RiskScoreConfig(NodeConfig):
    score_field: str = "member.riskScore"
    threshold: float
    operator: Literal[">=", ">", "<=", "<"] = ">="


class HedisTriggerConfig(NodeConfig):
    measure: str = Field(min_length=1)
    gaps_field: str = "member.careGaps"


class PcpAssignmentConfig(NodeConfig):
    pcp_field: str = "member.pcp"
    require_active: bool = True


class ProgramEligibilityConfig(NodeConfig):
    program: str = Field(min_length=1)
    programs_field: str = "member.programs"
    criteria: str | None = None


class WorkflowRuleConfig(NodeConfig):
    rule: str = Field(min_length=1)
    rule_id: str | None = None
    trigger_condition: str = Field(min_length=1)
    required_action: str = ""
    level: RuleLevel | None = None
    blocking_rule: bool = False
    required_block_id: str | None = None
    required_component_id: str | None = None
    required_flag: str | None = None
    regulation: str | None = None

    @property
    def effective_level(self) -> RuleLevel:
        if self.level is not None:
            return self.level
        return "blocking" if self.blocking_rule else "required"


class ReturnConfig(NodeConfig):
    reason: str | None = None


class FlagConfig(NodeConfig):
    message: str = Field(min_length=1)
    category: str = "review"


@dataclass(frozen=True, slots=True)
class NodeTypeDef:
    type_name: str
    label: str
    group: str
    branching: BranchingKind
    config_model: type[NodeConfig]
    aliases: tuple[str, ...] = field(default_factory=tuple)


def _def(
    type_name: str,
    label: str,
    group: str,
    branching: BranchingKind,
    config_model: type[NodeConfig],
    *aliases: str,
) -> NodeTypeDef:
    return NodeTypeDef(type_name, label, group, branching, config_model, tuple(aliases))


NODE_TYPES: dict[str, NodeTypeDef] = {
    item.type_name: item
    for item in (
        _def("start", "Start", "Meta", "sequence", EmptyConfig, "StartNode"),
        _def("condition", "If", "Logic", "boolean", ConditionConfig, "IfNode", "if"),
        _def("else", "Else", "Logic", "sequence", EmptyConfig, "ElseNode"),
        _def("expression", "Expression", "Logic", "boolean", ExpressionConfig, "ExpressionNode"),
        _def("switch", "Switch", "Logic", "cases", SwitchConfig, "SwitchCaseNode", "SwitchNode"),
        _def("loop", "Loop", "Looping", "loop", LoopConfig, "LoopNode", "ClaimLineLoopNode", "repeater"),
        _def("table_loop", "Table Loop", "Looping", "loop", TableLoopConfig, "TableLoopNode"),
        _def("block", "Block", "Content", "sequence", BlockConfig, "BlockNode"),
        _def("include", "Include", "Content", "sequence", BlockConfig, "IncludeNode", "ReusableBlockNode"),
        _def("component_insert", "Component", "Content", "sequence", ComponentInsertConfig, "ComponentInsertNode"),
        _def("dynamic_text", "Dynamic Text", "Content", "sequence", DynamicTextConfig, "DynamicTextNode"),
        _def("formatting", "Formatting", "Styling", "sequence", FormattingConfig, "FormattingNode", "SetStyleNode"),
        _def("alert_style", "Alert Style", "Styling", "sequence", AlertStyleConfig, "AlertStyleNode"),
        _def("hide", "Hide", "Styling", "sequence", HideConfig, "HideNode"),
        _def("locale_style", "Locale Style", "Styling", "sequence", LocaleStyleConfig, "LocaleStyleNode"),
        _def("cms_disclosure", "CMS Disclosure", "Compliance", "sequence", CmsDisclosureConfig, "CMSDisclosureNode"),
        _def("hipaa_notice", "HIPAA Notice", "Compliance", "sequence", HipaaNoticeConfig, "HIPAANoticeNode"),
        _def("language_access", "Language Access", "Compliance", "sequence", LanguageAccessConfig, "LanguageAccessNode"),
        _def("channel", "Channel", "Delivery", "channel", ChannelConfig, "ChannelNode"),
        _def("channel_fallback", "Channel Fallback", "Delivery", "fallback", ChannelFallbackConfig, "ChannelFallbackNode"),
        _def("set_language", "Set Language", "Language", "sequence", SetLanguageConfig, "SetLanguageNode"),
        _def("set_variation", "Set Variation", "Language", "sequence", SetVariationConfig, "SetVariationNode"),
        _def("set_variable", "Set Variable", "Variables", "sequence", SetVariableConfig, "SetVariableNode"),
        _def("derived_variable", "Derived Variable", "Variables", "sequence", DerivedVariableConfig, "DerivedVariableNode", "CalculationNode"),
        _def("query", "Query", "Data", "sequence", QueryConfig, "QueryNode"),
        _def("api_call", "API Call", "Data", "sequence", ApiCallConfig, "APICallNode"),
        _def("push_data", "Push Data", "Data", "sequence", PushDataConfig, "PushDataNode", "WebhookNode"),
        _def("fhir_query", "FHIR Query", "Data", "sequence", FhirQueryConfig, "FHIRQueryNode"),
        _def("data_join", "Data Join", "Data", "sequence", DataJoinConfig, "DataJoinNode"),
        _def("diagnosis_match", "Diagnosis Match", "Healthcare", "boolean", DiagnosisMatchConfig, "DiagnosisCodeNode"),
        _def("risk_score", "Risk Score", "Healthcare", "boolean", RiskScoreConfig, "RiskScoreNode"),
        _def("hedis_trigger", "HEDIS Trigger", "Healthcare", "boolean", HedisTriggerConfig, "HEDISTriggerNode"),
        _def("pcp_assignment", "PCP Assignment", "Healthcare", "boolean", PcpAssignmentConfig, "PCPAssignmentNode"),
        _def("program_eligibility", "Program Eligibility", "Healthcare", "boolean", ProgramEligibilityConfig, "ProgramEligibilityNode"),
        _def("workflow_rule", "Workflow Rule", "Compliance", "sequence", WorkflowRuleConfig, "WorkflowNode", "WorkflowRuleNode"),
        _def("return", "Return", "Meta", "terminal", ReturnConfig, "ReturnNode", "stop", "end"),
        _def("flag", "Flag", "Meta", "sequence", FlagConfig, "FlagNode"),
    )
}

_ALIASES: dict[str, str] = {}
for _type_def in NODE_TYPES.values():
    _ALIASES[_type_def.type_name.lower()] = _type_def.type_name
    _ALIASES[_type_def.type_name.replace("_", "").lower()] = _type_def.type_name
    for _alias in _type_def.aliases:
        _ALIASES[_alias.lower()] = _type_def.type_name


def resolve_type_name(raw: str) -> str:
    """Map an editor or legacy type name onto its canonical node type."""
    key = str(raw or "").strip()
    canonical = _ALIASES.get(key.lower())
    if canonical is None:
        raise UnknownNodeType(key)
    return canonical


def get_node_type(type_name: str) -> NodeTypeDef:
    return NODE_TYPES[resolve_type_name(type_name)]


def validate_config(type_name: str, raw_config: dict[str, Any] | None) -> NodeConfig:
    """Validate raw config against the type's model; raises ``ValidationError``."""
    definition = get_node_type(type_name)
    return definition.config_model.model_validate(raw_config or {})


def config_errors(type_name: str, raw_config: dict[str, Any] | None) -> list[str]:
    try:
        validate_config(type_name, raw_config)
    except ValidationError as exc:
        return [
            f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
            for error in exc.errors()
        ]
    return []
