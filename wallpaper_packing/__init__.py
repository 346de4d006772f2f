"""
Wallpaper Group Packing Optimizer
Searches for dense periodic packings of a polygon with:
- All 17 plane symmetry groups
- Exact separating-axis overlap tests
- Basin-hopping Monte Carlo over cell and shape parameters
- Seeded, reproducible multi-start runs
"""

from .errors import (
    PackingError,
    DegenerateCell,
    DegenerateShape,
    InvalidTransform,
    OverlapDetectedDuringInit,
    OptimizerDivergence,
    NumericalError,
    UnknownWallpaperGroup,
)

from .geometry import Transform

from .shape import Shape, ShapeInstance

from .wallpaper import (
    WallpaperGroup,
    LatticeFamily,
    SymmetryOperation,
    ImageIndex,
    get_wallpaper_group,
    group_names,
)

from .cell import UnitCell

from .intersection import intersects

from .state import PackingState

from .optimize import (
    OptimizationConfig,
    OptimizationResult,
    RunStatistics,
    MonteCarloOptimizer,
    optimize_packing,
)

from .packing import (
    PackingSolver,
    create_initial_state,
)

from .validate import (
    validate_state,
    print_result_summary,
)

from .io_utils import (
    save_result,
    load_state,
    write_positions_csv,
)

__version__ = "0.6.0"
