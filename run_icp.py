#!/usr/bin/env python3
"""
Main entry point for dual-quaternion ICP point cloud registration.

This script provides a command-line interface around ``dqicp.ICPRegistration``.
"""

import argparse
import sys

import numpy as np

from dqicp import ICPRegistration, Status
from dqicp.visualization import plot_convergence


def run_registration(source_path, target_path, prior_path=None, seed=None,
                     max_iterations=40, n_jobs=1, output=None, plot=None,
                     verbose=False, profile=False):
    """Run registration and report the result."""
    print("\n" + "="*80)
    print("Dual-Quaternion ICP Registration")
    print("="*80)

    # Load point clouds
    print(f"\nLoading point clouds...")
    print(f"  Source: {source_path}")
    print(f"  Target: {target_path}")

    icp = ICPRegistration(source_path, target_path)

    print(f"  Source points: {len(icp.source)}")
    print(f"  Target points: {len(icp.target)}")

    prior = np.load(prior_path) if prior_path else None

    result = icp.register(prior=prior, seed=seed, max_iterations=max_iterations,
                          n_jobs=n_jobs, verbose=verbose, profile=profile)

    print(f"\n{'='*80}")
    print("RESULTS")
    print("="*80)
    print(f"Status: {result.status.value}")
    print(f"Iterations: {result.iterations}")
    if result.error is not None:
        print(f"Error: {result.error}")
    else:
        print(f"Residual (mean squared distance): {result.residual:.6f}")
        print(f"\nTransformation matrix:")
        print(result.transformation)

        # Save results
        if output:
            icp.save_result(output, result)
        if plot and result.history:
            plot_convergence(result.history, save_path=plot)

    return result


def load_and_report(filepath='icp_results.pkl'):
    """Print previously saved results."""
    result = ICPRegistration.load_result(filepath)
    if result is None:
        return None

    print(f"\nLoaded results:")
    print(f"  Status: {result['status']}")
    print(f"  Iterations: {result['iterations']}")
    print(f"  Residual: {result['residual']:.6f}")
    print(f"\nTransformation matrix:")
    print(result['transformation'])
    return result


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Dual-Quaternion ICP Point Cloud Registration',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Register source onto target
  python run_icp.py register scan_a.ply scan_b.ply

  # Start from a prior transform saved with numpy.save, reproducible sampling
  python run_icp.py register scan_a.ply scan_b.ply --prior prior.npy --seed 0

  # Load and print saved results
  python run_icp.py load --file icp_results.pkl
        """
    )

    subparsers = parser.add_subparsers(dest='mode', help='Mode')

    register_parser = subparsers.add_parser('register', help='Register source onto target')
    register_parser.add_argument('source', type=str, help='Path to source point cloud')
    register_parser.add_argument('target', type=str, help='Path to target (reference) point cloud')
    register_parser.add_argument('--prior', type=str, default=None,
                                 help='Path to a 4x4 prior transform (.npy)')
    register_parser.add_argument('--seed', type=int, default=None,
                                 help='Seed for the histogram sampling step')
    register_parser.add_argument('--max-iterations', type=int, default=40,
                                 help='Iteration cap')
    register_parser.add_argument('--n-jobs', type=int, default=1,
                                 help='Parallel workers for the nearest neighbor search')
    register_parser.add_argument('--output', type=str, default=None,
                                 help='Save results to this pickle file')
    register_parser.add_argument('--plot', type=str, default=None,
                                 help='Save a convergence plot to this path')
    register_parser.add_argument('--verbose', action='store_true',
                                 help='Print per-iteration progress')
    register_parser.add_argument('--profile', action='store_true',
                                 help='Print per-stage timings')

    load_parser = subparsers.add_parser('load', help='Print saved results')
    load_parser.add_argument('--file', type=str, default='icp_results.pkl',
                             help='Path to saved results file')

    args = parser.parse_args(argv)

    if args.mode == 'register':
        result = run_registration(
            args.source,
            args.target,
            prior_path=args.prior,
            seed=args.seed,
            max_iterations=args.max_iterations,
            n_jobs=args.n_jobs,
            output=args.output,
            plot=args.plot,
            verbose=args.verbose,
            profile=args.profile
        )
        return 1 if result.status is Status.FAILED else 0
    elif args.mode == 'load':
        return 0 if load_and_report(args.file) is not None else 1

    parser.print_help()
    return 2


if __name__ == '__main__':
    sys.exit(main())
