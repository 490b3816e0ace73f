"""
Reference neuron models built with the IR API.

Each builder takes parameter overrides as keyword arguments::

    >>> from neurosolve.models import iaf_psc_exp
    >>> model = iaf_psc_exp(tau_m=20.0)
"""

from neurosolve.models.iaf_psc_exp import iaf_psc_exp
from neurosolve.models.iaf_psc_alpha import iaf_psc_alpha
from neurosolve.models.iaf_cond_beta import iaf_cond_beta
from neurosolve.models.hh_psc_alpha import hh_psc_alpha

MODELS = {
    "iaf_psc_exp": iaf_psc_exp,
    "iaf_psc_alpha": iaf_psc_alpha,
    "iaf_cond_beta": iaf_cond_beta,
    "hh_psc_alpha": hh_psc_alpha,
}

__all__ = ["iaf_psc_exp", "iaf_psc_alpha", "iaf_cond_beta", "hh_psc_alpha", "MODELS"]
