from letter_logic.graph.loader.passes.canonicalize import run_canonicalize_pass
from letter_logic.graph.loader.passes.cfg_pass import CFGAnalysis, run_cfg_pass
from letter_logic.graph.loader.passes.edge_pass import run_edge_pass
from letter_logic.graph.loader.passes.finalize_pass import run_finalize_pass
from letter_logic.graph.loader.passes.schema_pass import run_schema_pass
from letter_logic.graph.loader.passes.template_pass import TemplateAnalysis, run_template_pass

__all__ = [
    "CFGAnalysis",
    "TemplateAnalysis",
    "run_canonicalize_pass",
    "run_cfg_pass",
    "run_edge_pass",
    "run_finalize_pass",
    "run_schema_pass",
    "run_template_pass",
]
