# =============================================================================
# PIPELINE REPORT & LOGS
# =============================================================================
# - Collect run messages (errors, warnings, info) for every pipeline stage
# - Build per-check validation records consumed by external report renderers
# - Keep console output and report contents in lockstep


from typing import Any, Dict, List, Optional


# ------------------------------------------------------------
# RUN REPORT
# ------------------------------------------------------------

def init_report() -> Dict[str, List[str]]:

    return {
        'errors': [],
        'warnings': [],
        'info': []
    }


def log_info(message: str, report: Optional[Dict[str, List[str]]] = None) -> None:
    print(f'[INFO] {message}')
    if report is not None:
        report['info'].append(message)


def log_warning(message: str, report: Optional[Dict[str, List[str]]] = None) -> None:
    print(f'[WARNING] {message}')
    if report is not None:
        report['warnings'].append(message)


def log_error(message: str, report: Optional[Dict[str, List[str]]] = None) -> None:
    print(f'[ERROR] {message}')
    if report is not None:
        report['errors'].append(message)


# ------------------------------------------------------------
# CHECK RECORDS
# ------------------------------------------------------------

def init_check(check: str) -> Dict[str, Any]:

    return {
        'check': check,
        'passed': True,
        'issues': [],
        'warnings': []
    }


def add_issue(result: Dict[str, Any], message: str) -> None:
    result['issues'].append(message)
    result['passed'] = False


def add_warning(result: Dict[str, Any], message: str) -> None:
    result['warnings'].append(message)


def log_check(result: Dict[str, Any],
              report: Optional[Dict[str, List[str]]] = None
              ) -> None:
    """
    Mirror a finished check into the run report.

    Failed checks become errors, check warnings stay warnings.
    """

    if result['passed']:
        log_info(f"{result['check']}: passed", report)
    else:
        log_error(
            f"{result['check']}: failed with {len(result['issues'])} issue(s)",
            report
            )

    for warning in result['warnings']:
        log_warning(f"{result['check']}: {warning}", report)


# =============================================================================
# END OF SCRIPT
# =============================================================================
