"""bernoulli_hglm — Log-posterior density of a Bayesian hierarchical Bernoulli GLM.

Evaluates the unnormalised log-posterior of a Bernoulli-response GLM
with logit, probit, cauchit, log or cloglog link, fixed-effect priors
(normal, Student-t, horseshoe, horseshoe-plus) and grouped random
effects with decomposition-of-covariance priors built by the onion
method.  Designed to be called repeatedly by an external sampler: the
data bundle is validated once, each evaluation is a pure function of
the parameter point, and the optional JAX backend makes the density
differentiable.

Public API:
    .. autosummary::
        log_density
        generate
        build_linear_predictor
        BernoulliModel
        BernoulliData
        Parameters
        GeneratedQuantities
        GroupTermLayout
        CSRMatrix
        Link
        linkinv
        resolve_link
        ll_bern
        pw_bern
        bernoulli_log_likelihood
        intercept_upper_bound
        make_theta_L
        make_b
        csr_matvec
        build_random_effects_design
        GroupingTerm
        PriorFamily
        NoPrior
        NormalPrior
        StudentTPrior
        HorseshoePrior
        HorseshoePlusPrior
        NormalInterceptPrior
        StudentTInterceptPrior
        resolve_prior
        register_prior
        decov_log_prior
        get_backend
        set_backend
"""

from ._config import get_backend, set_backend
from ._results import GeneratedQuantities
from .covariance import GroupTermLayout, covariance_blocks, make_theta_L
from .data import BernoulliData, Parameters, check_parameters
from .intercept import apply_intercept, intercept_upper_bound, log_link_shift
from .likelihood import bernoulli_log_likelihood, ll_bern, pw_bern
from .links import Link, linkinv, resolve_link
from .model import BernoulliModel, build_linear_predictor, generate, log_density
from .priors import (
    HorseshoePlusPrior,
    HorseshoePrior,
    NoPrior,
    NormalInterceptPrior,
    NormalPrior,
    PriorFamily,
    StudentTInterceptPrior,
    StudentTPrior,
    decov_log_prior,
    register_prior,
    resolve_intercept_prior,
    resolve_prior,
)
from .random_effects import make_b
from .sparse import CSRMatrix, GroupingTerm, build_random_effects_design, csr_matvec

__all__ = [
    "log_density",
    "generate",
    "build_linear_predictor",
    "BernoulliModel",
    "BernoulliData",
    "Parameters",
    "check_parameters",
    "GeneratedQuantities",
    "GroupTermLayout",
    "covariance_blocks",
    "make_theta_L",
    "make_b",
    "CSRMatrix",
    "csr_matvec",
    "build_random_effects_design",
    "GroupingTerm",
    "Link",
    "linkinv",
    "resolve_link",
    "ll_bern",
    "pw_bern",
    "bernoulli_log_likelihood",
    "apply_intercept",
    "intercept_upper_bound",
    "log_link_shift",
    "PriorFamily",
    "NoPrior",
    "NormalPrior",
    "StudentTPrior",
    "HorseshoePrior",
    "HorseshoePlusPrior",
    "NormalInterceptPrior",
    "StudentTInterceptPrior",
    "resolve_prior",
    "resolve_intercept_prior",
    "register_prior",
    "decov_log_prior",
    "get_backend",
    "set_backend",
]

__version__ = "0.1.0"
