# src/tdprop/presets.py
"""Named scheme presets (constant coefficient tables).

The commutator-free tables use Gauss-Legendre nodes with 1, 2, 3, 4 or 5
points and satisfy the classical order conditions of commutator-free
exponential integrators for the stated order. They are configuration data and
are never re-derived at runtime.

Look-ups by name go through :func:`get_scheme`; the registry itself is
:data:`PRESETS`.
"""

from __future__ import annotations

from typing import Final

import numpy as np

from .errors import ConfigurationError
from .schemes import (
    CommutatorFreeScheme,
    EmbeddedRungeKuttaScheme,
    MagnusScheme,
    Scheme,
)

_UNKNOWN_SCHEME_ERROR_MSG = "Unknown scheme: {name}. Available: {names}"

# =============================================================================
# Gauss-Legendre nodes on [0, 1]
# =============================================================================

_S3 = np.sqrt(3.0)
_S15 = np.sqrt(15.0)
_S30 = np.sqrt(30.0)

_GAUSS2: Final = np.array([0.5 - _S3 / 6.0, 0.5 + _S3 / 6.0])
_GAUSS3: Final = np.array([0.5 - _S15 / 10.0, 0.5, 0.5 + _S15 / 10.0])
_GAUSS4: Final = np.array(
    [
        0.5 - np.sqrt((2.0 * _S30 + 15.0) / 140.0),
        0.5 - np.sqrt((15.0 - 2.0 * _S30) / 140.0),
        0.5 + np.sqrt((15.0 - 2.0 * _S30) / 140.0),
        0.5 + np.sqrt((2.0 * _S30 + 15.0) / 140.0),
    ]
)
_GAUSS5: Final = 0.5 * (
    np.array(
        [
            -np.sqrt(5.0 + 2.0 * np.sqrt(10.0 / 7.0)) / 3.0,
            -np.sqrt(5.0 - 2.0 * np.sqrt(10.0 / 7.0)) / 3.0,
            0.0,
            np.sqrt(5.0 - 2.0 * np.sqrt(10.0 / 7.0)) / 3.0,
            np.sqrt(5.0 + 2.0 * np.sqrt(10.0 / 7.0)) / 3.0,
        ]
    )
    + 1.0
)


# =============================================================================
# Commutator-free exponential propagators
# =============================================================================

# fmt: off
# exponential midpoint rule
CF2: Final = CommutatorFreeScheme(np.ones((1, 1)), [0.5], 2, name="CF2")

CF2g4: Final = CommutatorFreeScheme([[0.5, 0.5]], _GAUSS2, 2, name="CF2g4")

CF4: Final = CommutatorFreeScheme(
    [
        [0.25 + _S3 / 6.0, 0.25 - _S3 / 6.0],
        [0.25 - _S3 / 6.0, 0.25 + _S3 / 6.0],
    ],
    _GAUSS2,
    4,
    name="CF4",
)

CF4g6: Final = CommutatorFreeScheme(
    [
        [(2.0 * _S15 + 5.0) / 36.0, 2.0 / 9.0, (-2.0 * _S15 + 5.0) / 36.0],
        [(-2.0 * _S15 + 5.0) / 36.0, 2.0 / 9.0, (2.0 * _S15 + 5.0) / 36.0],
    ],
    _GAUSS3,
    4,
    name="CF4g6",
)

_R53 = np.sqrt(5.0 / 3.0)

CF4o: Final = CommutatorFreeScheme(
    [
        [37.0 / 240.0 + 10.0 / 87.0 * _R53, -1.0 / 30.0, 37.0 / 240.0 - 10.0 / 87.0 * _R53],
        [-11.0 / 360.0, 23.0 / 45.0, -11.0 / 360.0],
        [37.0 / 240.0 - 10.0 / 87.0 * _R53, -1.0 / 30.0, 37.0 / 240.0 + 10.0 / 87.0 * _R53],
    ],
    _GAUSS3,
    4,
    name="CF4o",
)

# optimized for a weighted leading error measure
CF4oH: Final = CommutatorFreeScheme(
    [
        [0.302146842308616954258187683416, -0.030742768872036394116279742324, 0.004851603407498684079562131338],
        [-0.029220667938337860559972036973, 0.505929982188517232677003929089, -0.029220667938337860559972036973],
        [0.004851603407498684079562131337, -0.030742768872036394116279742324, 0.302146842308616954258187683417],
    ],
    _GAUSS3,
    4,
    name="CF4oH",
)

CF6: Final = CommutatorFreeScheme(
    [
        [-0.20052856057448226894, 1.8713900774428756530, -0.59100909048596250164],
        [0.32223594293373734804, -1.6491678552206534307, 0.74707948590448520033],
        [0.74707948590448520027, -1.6491678552206534307, 0.32223594293373734809],
        [-0.59100909048596250159, 1.8713900774428756530, -0.20052856057448226900],
    ],
    _GAUSS3,
    6,
    name="CF6",
)

CF6g8: Final = CommutatorFreeScheme(
    [
        [-0.34314400153702789748, 1.1195678797143181223, 0.91838304591063001179, -0.61495449770548935422],
        [0.41814779815983290968, -0.96538391082227167806, -0.74649443737140338475, 0.71387812365141127071],
        [0.71387812365141127066, -0.74649443737140338471, -0.96538391082227167811, 0.41814779815983290974],
        [-0.61495449770548935417, 0.91838304591063001175, 1.1195678797143181224, -0.34314400153702789754],
    ],
    _GAUSS4,
    6,
    name="CF6g8",
)

CF6n: Final = CommutatorFreeScheme(
    [
        [7.9124225942889763e-01, -8.0400755305553218e-02, 1.2765293626634554e-02],
        [-4.8931475164583259e-01, 5.4170980027798808e-02, -1.2069823881924156e-02],
        [-2.9025638294289255e-02, 5.0138457552775674e-01, -2.5145341733509552e-02],
        [4.8759082890019896e-03, -3.0710355805557892e-02, 3.0222764976657693e-01],
    ],
    _GAUSS3,
    6,
    name="CF6n",
)

CF6ng8: Final = CommutatorFreeScheme(
    [
        [5.89464201605815655765303416672229380e-01, 2.43830015772764437289913379731814221e-01, -1.57259787655929092496086012361705682e-01, 4.75723680273279690817865828307895985e-02],
        [-3.65105740082651034389439866942092769e-01, -1.47548276150151315750289379302899394e-01, 9.83396340552589170241119484898018497e-02, -3.28992133224145061662174359910648657e-02],
        [-6.86020666155581903549750505993981876e-02, 2.89858731629633708796424619465199666e-01, 2.91857952484170189124028989070900103e-01, -6.59010219982877682836438241904462939e-02],
        [1.81710276611204976656434754802610403e-02, -6.00678938209737590225805945051140074e-02, 9.31347785477730576614131001900042084e-02, 2.25155289862101234054606651961721100e-01],
    ],
    _GAUSS4,
    6,
    name="CF6ng8",
)

CF7: Final = CommutatorFreeScheme(
    [
        [2.05862188450411892209e-01, 1.69508382914682544509e-01, -1.02088008415028059851e-01, 3.04554010755044437431e-02],
        [-5.74532495795307023280e-02, 2.34286861311879288330e-01, 3.32946059487076984706e-01, -7.03703697036401378340e-02],
        [-8.93040281749440468751e-03, 2.71488489365780259156e-02, -2.95144169823456538040e-02, -1.51311830884601959206e-01],
        [5.52299810755465569835e-01, -3.64425287556240176808e00, 2.53660580449381888484e00, -6.61436528542997675116e-01],
        [-5.38241659087501080427e-01, 3.60578285850975236760e00, -2.50685041783117850901e00, 6.51947409253201845106e-01],
        [2.03907348473756540850e-02, -6.64014986792173869631e-02, 9.49735566789294244299e-02, 3.74643341371260411994e-01],
    ],
    _GAUSS4,
    7,
    name="CF7",
)

CF8: Final = CommutatorFreeScheme(
    [
        [1.84808462624313039047e-01, -2.07206621202004201439e-02, 5.02711867953985524846e-03, -1.02882825365674947238e-03],
        [-2.34494788701189042407e-02, 4.21259009948623260268e-01, -4.74878986332597661320e-02, 9.04478813619618482626e-03],
        [4.46203609236170079455e-02, -2.12369356865717369483e-01, 5.69989517802253965907e-01, 6.02984678266997385471e-03],
        [-4.93752515735367769884e-02, 2.32989476865882554115e-01, -6.22614628245849008467e-01, 3.27752279924315371495e-03],
        [3.27752279924315371495e-03, -6.22614628245849008467e-01, 2.32989476865882554115e-01, -4.93752515735367769884e-02],
        [6.02984678266997385471e-03, 5.69989517802253965907e-01, -2.12369356865717369483e-01, 4.46203609236170079455e-02],
        [9.04478813619618482626e-03, -4.74878986332597661320e-02, 4.21259009948623260268e-01, -2.34494788701189042407e-02],
        [-1.02882825365674947238e-03, 5.02711867953985524846e-03, -2.07206621202004201439e-02, 1.84808462624313039047e-01],
    ],
    _GAUSS4,
    8,
    name="CF8",
)

CF8C: Final = CommutatorFreeScheme(
    [
        [-1.232611007291861933e00, 1.381999278877963415e-01, -3.352921035850962622e-02, 6.861942424401394962e-03],
        [1.452637092757343214e00, -1.632549976033022450e-01, 3.986114827352239259e-02, -8.211316003097062961e-03],
        [-1.783965547974815151e-02, -8.850494961553933912e-02, -1.299159096777419811e-02, 4.448254906109529464e-03],
        [-2.982838328015747208e-02, 4.530735723950198008e-01, -6.781322579940055086e-03, -1.529505464262590422e-03],
        [-1.529505464262590422e-03, -6.781322579940055086e-03, 4.530735723950198008e-01, -2.982838328015747208e-02],
        [4.448254906109529464e-03, -1.299159096777419811e-02, -8.850494961553933912e-02, -1.783965547974815151e-02],
        [-8.211316003097062961e-03, 3.986114827352239259e-02, -1.632549976033022450e-01, 1.452637092757343214e00],
        [6.861942424401394962e-03, -3.352921035850962622e-02, 1.381999278877963415e-01, -1.232611007291861933e00],
    ],
    _GAUSS4,
    8,
    name="CF8C",
)

CF8AF: Final = CommutatorFreeScheme(
    [
        [1.87122040358115390530e-01, -2.17649338120833602438e-02, 5.52892003021124482393e-03, -1.17049553231009501581e-03],
        [1.20274380119388885065e-03, 4.12125752973891079564e-01, -4.12733647828949079769e-02, 7.36567552381537106608e-03],
        [1.35345551498985132129e-01, -5.22856505688516843294e-01, 8.04624511929284544063e-01, 5.23457489042977401203e-02],
        [-1.28946403255047767209e-01, 4.98263615941272492752e-01, -7.66539274112930211564e-01, -5.10038659643654002820e-02],
        [-1.13857707205616619581e-02, -1.56116196769613328288e-01, -1.38617787803146844186e-01, 1.21952821870042290581e-02],
        [-2.91430842323998986020e-02, 2.52697839525799205662e-01, 2.52697839525799205662e-01, -2.91430842323998986020e-02],
        [1.21952821870042290581e-02, -1.38617787803146844186e-01, -1.56116196769613328288e-01, -1.13857707205616619581e-02],
        [-5.10038659643654002820e-02, -7.66539274112930211564e-01, 4.98263615941272492752e-01, -1.28946403255047767209e-01],
        [5.23457489042977401203e-02, 8.04624511929284544063e-01, -5.22856505688516843294e-01, 1.35345551498985132129e-01],
        [7.36567552381537106608e-03, -4.12733647828949079769e-02, 4.12125752973891079564e-01, 1.20274380119388885065e-03],
        [-1.17049553231009501581e-03, 5.52892003021124482393e-03, -2.17649338120833602438e-02, 1.87122040358115390530e-01],
    ],
    _GAUSS4,
    8,
    name="CF8AF",
)

CF10: Final = CommutatorFreeScheme(
    [
        [1.257519487460748505e-01, -1.865909914245271482e-02, 6.733376258605780510e-03, -2.718352784202390925e-03, 7.068483735775850990e-04],
        [-2.895851111122071992e-03, 2.923981849411676845e-01, -4.296189672654135889e-02, 1.490123420460316949e-02, -3.808961956414262732e-03],
        [3.578233942230071908e-02, -2.008488760890393015e-01, 6.682006550293361043e-01, 8.920336627376998761e-02, -3.910578669555082511e-02],
        [-1.944671056480696889e-02, 1.108002059111070326e-01, -3.720332832453305167e-01, -4.180370067214972631e-02, 1.501200997424843587e-02],
        [-6.498700096451508075e-03, -6.581426937488461349e-03, 2.350498736569961365e-01, -8.781176304922676745e-02, -3.978644052337576376e-03],
        [3.032747599105825582e-02, -3.672352541131558981e-02, -4.341457984155596505e-01, 1.431037387565488689e-01, -1.472822613175338694e-02],
        [1.444710249189639879e-02, 9.808293294138223008e-02, -4.072013249310684334e-01, 1.240141313609900441e-02, 1.992268959805941013e-02],
        [-3.658914067788396192e-03, -1.244739113166053859e-01, 4.885806205957841604e-01, -1.956085512514405479e-03, -2.936517739289611528e-02],
        [-2.936517739289611528e-02, -1.956085512514405479e-03, 4.885806205957841604e-01, -1.244739113166053859e-01, -3.658914067788396192e-03],
        [1.992268959805941013e-02, 1.240141313609900441e-02, -4.072013249310684334e-01, 9.808293294138223008e-02, 1.444710249189639879e-02],
        [-1.472822613175338694e-02, 1.431037387565488689e-01, -4.341457984155596505e-01, -3.672352541131558981e-02, 3.032747599105825582e-02],
        [-3.978644052337576376e-03, -8.781176304922676745e-02, 2.350498736569961365e-01, -6.581426937488461349e-03, -6.498700096451508075e-03],
        [1.501200997424843587e-02, -4.180370067214972631e-02, -3.720332832453305167e-01, 1.108002059111070326e-01, -1.944671056480696889e-02],
        [-3.910578669555082511e-02, 8.920336627376998761e-02, 6.682006550293361043e-01, -2.008488760890393015e-01, 3.578233942230071908e-02],
        [-3.808961956414262732e-03, 1.490123420460316949e-02, -4.296189672654135889e-02, 2.923981849411676845e-01, -2.895851111122071992e-03],
        [7.068483735775850990e-04, -2.718352784202390925e-03, 6.733376258605780510e-03, -1.865909914245271482e-02, 1.257519487460748505e-01],
    ],
    _GAUSS5,
    10,
    name="CF10",
)


# =============================================================================
# Magnus
# =============================================================================

Magnus4: Final = MagnusScheme(4, name="Magnus4")


# =============================================================================
# Embedded Runge-Kutta pairs
# =============================================================================

# Dormand-Prince 5(4); the last row of A is the 5th-order solution
DoPri45: Final = EmbeddedRungeKuttaScheme(
    [
        [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [1 / 5, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [3 / 40, 9 / 40, 0.0, 0.0, 0.0, 0.0, 0.0],
        [44 / 45, -56 / 15, 32 / 9, 0.0, 0.0, 0.0, 0.0],
        [19372 / 6561, -25360 / 2187, 64448 / 6561, -212 / 729, 0.0, 0.0, 0.0],
        [9017 / 3168, -355 / 33, 46732 / 5247, 49 / 176, -5103 / 18656, 0.0, 0.0],
        [35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0.0],
    ],
    [0.0, 1 / 5, 3 / 10, 4 / 5, 8 / 9, 1.0, 1.0],
    [5179 / 57600, 0.0, 7571 / 16695, 393 / 640, -92097 / 339200, 187 / 2100, 1 / 40],
    4,
    name="DoPri45",
)

# Ch. Tsitouras, Runge-Kutta pairs of order 5(4) satisfying only the first
# column simplifying assumption, Comput. Math. Appl. 62 (2011) 770-775.
_TSIT_A: Final = np.array(
    [
        [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [0.161, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [-0.008480655492356992, 0.3354806554923570, 0.0, 0.0, 0.0, 0.0, 0.0],
        [2.8971530571054944, -6.359448489975075, 4.362295432869581, 0.0, 0.0, 0.0, 0.0],
        [5.32586482843926, -11.74888356406283, 7.495539342889836, -0.09249506636175525, 0.0, 0.0, 0.0],
        [5.8614554429464, -12.92096931784711, 8.159367898576159, -0.07158497328140100, -0.02826905039406838, 0.0, 0.0],
        [0.09646076681806523, 0.01, 0.4798896504144996, 1.379008574103742, -3.290069515436081, 2.324710524099774, 0.0],
    ]
)
_TSIT_ERR: Final = np.array(
    [0.001780011052226, 0.000816434459657, -0.007880878010262, 0.144711007173263, -0.58235716545255, 0.458082105929187, -1 / 66]
)

Tsit45: Final = EmbeddedRungeKuttaScheme(
    _TSIT_A,
    [0.0, 0.161, 0.327, 0.9, 0.9800255409045097, 1.0, 1.0],
    _TSIT_ERR + _TSIT_A[-1],
    4,
    name="Tsit45",
)
# fmt: on


# =============================================================================
# Registry
# =============================================================================

PRESETS: Final[dict[str, Scheme]] = {
    scheme.name: scheme
    for scheme in (
        CF2,
        CF2g4,
        CF4,
        CF4g6,
        CF4o,
        CF4oH,
        CF6,
        CF6g8,
        CF6n,
        CF6ng8,
        CF7,
        CF8,
        CF8C,
        CF8AF,
        CF10,
        Magnus4,
        DoPri45,
        Tsit45,
    )
    if scheme.name is not None
}


def get_scheme(name: str) -> Scheme:
    """Return the preset called ``name`` (case-insensitive).

    Args:
        name: Preset name, e.g. ``"CF4"`` or ``"dopri45"``.

    Raises:
        ConfigurationError: If no preset has that name.

    Returns:
        The immutable preset scheme.
    """
    key = str(name).strip().lower()
    for preset_name, scheme in PRESETS.items():
        if preset_name.lower() == key:
            return scheme
    raise ConfigurationError(
        _UNKNOWN_SCHEME_ERROR_MSG.format(name=name, names=sorted(PRESETS))
    )
