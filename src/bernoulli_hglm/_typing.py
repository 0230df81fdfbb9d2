"""Shared type aliases for the bernoulli_hglm package."""

from typing import Any

import numpy as np
import pandas as pd

# Array-like inputs accepted at the data-bundle boundary.
ArrayLike = np.ndarray | pd.DataFrame | pd.Series

# Backend array: ``np.ndarray`` on the NumPy backend, ``jax.Array``
# (possibly a tracer) on the JAX backend.
Array = Any
