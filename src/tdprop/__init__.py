"""tdprop exponential integrators for linear time-dependent ODEs."""

from __future__ import annotations

from .config import StepperSettings
from .defects import gamma, trapezoidal_defect
from .errors import (
    ConfigurationError,
    DerivativeNotImplementedError,
    DimensionError,
    TdpropError,
)
from .expmv import expmv
from .magnus import Magnus4DerivativeState, Magnus4State
from .operators import (
    MatrixState,
    OperatorState,
    TimeDependentMatrix,
    TimeDependentOperator,
    TimeDependentSchroedingerMatrix,
)
from .orders import global_orders, local_orders, local_orders_est
from .presets import (
    CF2,
    CF4,
    CF6,
    CF7,
    CF8,
    CF8AF,
    CF8C,
    CF10,
    PRESETS,
    CF2g4,
    CF4g6,
    CF4o,
    CF4oH,
    CF6g8,
    CF6n,
    CF6ng8,
    DoPri45,
    Magnus4,
    Tsit45,
    get_scheme,
)
from .schemes import (
    CommutatorFreeScheme,
    EmbeddedRungeKuttaScheme,
    MagnusScheme,
    Scheme,
    SchemeEstimatorPair,
)
from .step_engine import step, step_estimated
from .steppers import (
    AdaptiveTimeStepper,
    DtControllerConfig,
    EquidistantCorrectedTimeStepper,
    EquidistantTimeStepper,
    StepReport,
)
from .workspace import Workspace

__all__ = [
    "CF2",
    "CF4",
    "CF6",
    "CF7",
    "CF8",
    "CF8AF",
    "CF8C",
    "CF10",
    "PRESETS",
    "AdaptiveTimeStepper",
    "CF2g4",
    "CF4g6",
    "CF4o",
    "CF4oH",
    "CF6g8",
    "CF6n",
    "CF6ng8",
    "CommutatorFreeScheme",
    "ConfigurationError",
    "DerivativeNotImplementedError",
    "DimensionError",
    "DoPri45",
    "DtControllerConfig",
    "EmbeddedRungeKuttaScheme",
    "EquidistantCorrectedTimeStepper",
    "EquidistantTimeStepper",
    "Magnus4",
    "Magnus4DerivativeState",
    "Magnus4State",
    "MagnusScheme",
    "MatrixState",
    "OperatorState",
    "Scheme",
    "SchemeEstimatorPair",
    "StepReport",
    "StepperSettings",
    "TdpropError",
    "TimeDependentMatrix",
    "TimeDependentOperator",
    "TimeDependentSchroedingerMatrix",
    "Tsit45",
    "Workspace",
    "expmv",
    "gamma",
    "get_scheme",
    "global_orders",
    "local_orders",
    "local_orders_est",
    "step",
    "step_estimated",
    "trapezoidal_defect",
]

__version__ = "0.1.0"
