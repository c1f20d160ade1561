# mini_cdpr/batch.py
"""
POSE LISTS: Batch Kinematics over a Trajectory
==============================================

PURPOSE:
--------
Evaluate a whole list of platform poses (e.g. a sampled trajectory) in one
call and collect the results in a pandas DataFrame, one row per pose.

A failing pose never aborts the batch: its row gets ok=False, a reason
string, and NaN lengths and forces.

POSE LIST FILES:
----------------
CSV with one pose per line, in either form:

    t,x,y,z,R11,R12,R13,R21,R22,R23,R31,R32,R33     (header, 'time' also ok)
    0.0,1.0,1.0,1.5,1,0,0,0,1,0,0,0,1

or 13 headerless columns in that order. Without a time column (header
without t/time, or 12 headerless columns) pass `sample_time` and the times
become 0, dt, 2·dt, ...

USAGE:
------
    poses = load_pose_list("trajectory.csv")
    df = run_pose_list(poses, robot, method="pulley")
    df[df['ok']]['length_0'].plot()
"""

import logging
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from .catenary import solve_catenary
from .config import STANDARD_GRAVITY, SolverOptions
from .kernel.errors import ConvergenceError, InfeasibleError, InvalidGeometryError
from .kernel.forces import distribute_forces
from .kernel.nlp import CancelToken
from .kernel.rotation import Pose
from .kernel.structure import DOF_BY_KIND, structure_matrix
from .model import CableMaterial, CableRobot
from .pulley import pulley_kinematics


logger = logging.getLogger(__name__)

ROTATION_COLUMNS = [f"R{i}{j}" for i in (1, 2, 3) for j in (1, 2, 3)]
POSE_COLUMNS = ['x', 'y', 'z'] + ROTATION_COLUMNS
TIME_COLUMNS = ('t', 'time')
METHODS = ('pulley', 'catenary')


def _with_time(poses: pd.DataFrame, times: Optional[pd.Series], sample_time: Optional[float]) -> pd.DataFrame:
    if times is None:
        if sample_time is None:
            raise ValueError("Pose list has no time column; pass sample_time")
        if not np.isfinite(sample_time) or sample_time <= 0.0:
            raise ValueError(f"sample_time must be > 0, got {sample_time}")
        times = np.arange(len(poses)) * float(sample_time)
    out = poses.astype(float).reset_index(drop=True)
    out.insert(0, 't', np.asarray(times, dtype=float))
    return out


def load_pose_list(path, sample_time: Optional[float] = None) -> pd.DataFrame:
    """
    Read a pose list CSV.

    Parameters:
    -----------
    path : str or path-like
        CSV file (see module docstring for the accepted layouts)
    sample_time : float, optional
        Time step used when the file carries no time column

    Returns:
    --------
    pd.DataFrame
        Columns t, x, y, z, R11 ... R33

    Raises:
    -------
    ValueError
        Unknown layout, missing columns, empty file, non-numeric entries, or
        no time information
    """
    raw = pd.read_csv(path, skipinitialspace=True)
    columns = [str(c).strip().lower() for c in raw.columns]

    if 'x' in columns:
        raw.columns = [str(c).strip() for c in raw.columns]
        lookup = {c.lower(): c for c in raw.columns}
        missing = [c for c in POSE_COLUMNS if c.lower() not in lookup]
        if missing:
            raise ValueError(f"Pose list is missing columns {missing}")
        poses = raw[[lookup[c.lower()] for c in POSE_COLUMNS]].copy()
        poses.columns = POSE_COLUMNS
        time_col = next((lookup[c] for c in TIME_COLUMNS if c in lookup), None)
        times = raw[time_col] if time_col is not None else None
    else:
        raw = pd.read_csv(path, header=None, skipinitialspace=True)
        if raw.shape[1] == 13:
            times = raw.iloc[:, 0]
            poses = raw.iloc[:, 1:]
        elif raw.shape[1] == 12:
            times = None
            poses = raw
        else:
            raise ValueError(
                f"Headerless pose lists need 12 or 13 columns, got {raw.shape[1]}"
            )
        poses = poses.copy()
        poses.columns = POSE_COLUMNS

    if len(poses) == 0:
        raise ValueError(f"Pose list {path} is empty")
    result = _with_time(poses, times, sample_time)

    logger.info("Loaded %d poses from %s", len(result), path)
    return result


def _iter_poses(poses):
    """Yield (time, Pose or exception) pairs from a DataFrame or an iterable of poses."""
    if isinstance(poses, pd.DataFrame):
        for k, row in enumerate(poses.itertuples(index=False)):
            row = row._asdict()
            t = float(row['t']) if 't' in row else float(k)
            try:
                yield t, Pose.from_vector([row[c] for c in POSE_COLUMNS])
            except InvalidGeometryError as e:
                yield t, e
    else:
        for k, pose in enumerate(poses):
            if not isinstance(pose, Pose):
                try:
                    pose = Pose.from_vector(pose)
                except InvalidGeometryError as e:
                    pose = e
            yield float(k), pose


def run_pose_list(
    poses: Union[pd.DataFrame, Iterable],
    robot: CableRobot,
    wrench=None,
    method: str = 'pulley',
    material: Optional[CableMaterial] = None,
    gravity: float = STANDARD_GRAVITY,
    options: Optional[SolverOptions] = None,
    structure_kind: str = '3R3T',
    cancel: Optional[CancelToken] = None,
    show_progress: bool = True,
) -> pd.DataFrame:
    """
    Evaluate inverse kinematics and cable forces for every pose.

    Parameters:
    -----------
    poses : pd.DataFrame or iterable
        Output of load_pose_list, or Pose objects / pose vectors
    robot : CableRobot
        Robot geometry and tension limits
    wrench : array_like, optional
        External wrench, zeros if omitted
    method : str
        'pulley' (massless cables + closed-form force distribution) or
        'catenary' (needs `material`)
    structure_kind : str
        Structure matrix kind for the 'pulley' method
    show_progress : bool
        Whether to show a progress bar

    Returns:
    --------
    pd.DataFrame
        Columns t, ok, reason, length_0 .. length_{M-1}, force_0 .. force_{M-1}
    """
    if method not in METHODS:
        raise ValueError(f"Unknown method '{method}'. Use one of {METHODS}")
    if method == 'catenary' and material is None:
        raise ValueError("method='catenary' needs a CableMaterial")
    if structure_kind not in DOF_BY_KIND:
        raise ValueError(f"Unknown structure matrix kind '{structure_kind}'")
    n_rows = 6 if method == 'catenary' else DOF_BY_KIND[structure_kind]
    wrench = np.zeros(n_rows) if wrench is None else np.asarray(wrench, dtype=float)

    m = robot.n_cables
    results = []
    items = list(_iter_poses(poses))
    iterator = tqdm(items, desc="Evaluating poses") if show_progress else items

    for t, pose in iterator:
        row = {'t': t, 'ok': False, 'reason': ''}
        lengths = np.full(m, np.nan)
        forces = np.full(m, np.nan)

        try:
            if isinstance(pose, InvalidGeometryError):
                raise pose
            if method == 'pulley':
                kin = pulley_kinematics(pose, robot)
                A = structure_matrix(robot.attachments, kin.unit_vectors, pose.rotation,
                                     kind=structure_kind)
                forces = distribute_forces(wrench, A, robot.force_min, robot.force_max)
                lengths = kin.lengths
            else:
                result = solve_catenary(pose, robot, wrench, material, gravity=gravity,
                                        options=options, cancel=cancel)
                lengths = result.lengths
                forces = result.tensions
            row['ok'] = True
        except InvalidGeometryError as e:
            row['reason'] = f"geometry: {e}"
        except InfeasibleError as e:
            row['reason'] = f"infeasible: {e}"
        except ConvergenceError as e:
            row['reason'] = f"not converged: {e}"

        row.update({f"length_{i}": lengths[i] for i in range(m)})
        row.update({f"force_{i}": forces[i] for i in range(m)})
        results.append(row)

    df = pd.DataFrame(results)
    n_failed = int((~df['ok']).sum()) if len(df) else 0
    logger.info("Evaluated %d poses with method '%s' (%d failed)", len(df), method, n_failed)
    return df
